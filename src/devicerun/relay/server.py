"""
Log relay server.

Accepts TCP connections from the deployed app one after another and copies
every byte it receives to stdout. Nothing is ever written back to the
connection. When the app disconnects (crash, restart, relaunch) the server
goes back to accept() on the same socket, so no restart is needed.

Run standalone:
    python -m devicerun.relay.server --port 9632

Run by LogRelayListener with an already-bound socket inherited from the
parent:
    python -m devicerun.relay.server --fd 5
"""

import argparse
import signal
import socket
import sys
from typing import BinaryIO, Callable, Optional

CHUNK_SIZE = 4096


def _stderr_notice(message: str) -> None:
    print(message, file=sys.stderr, flush=True)


def relay_connection(conn: socket.socket, out: BinaryIO) -> int:
    """Copy one connection to out until EOF. Returns bytes relayed."""
    total = 0
    while True:
        chunk = conn.recv(CHUNK_SIZE)
        if not chunk:
            return total
        out.write(chunk)
        out.flush()
        total += len(chunk)


def serve(
    sock: socket.socket,
    out: BinaryIO,
    notice: Callable[[str], None] = _stderr_notice,
    max_connections: Optional[int] = None
) -> int:
    """
    Relay connections on a listening socket, one at a time.

    Args:
        sock: Bound, listening TCP socket
        out: Binary stream receiving the log bytes
        notice: Sink for connect/disconnect notices (kept off out)
        max_connections: Stop after this many connections (None = forever)

    Returns:
        Number of connections served
    """
    served = 0
    while max_connections is None or served < max_connections:
        conn, addr = sock.accept()
        served += 1
        with conn:
            notice(f"[log relay] connected: {addr[0]}:{addr[1]}")
            try:
                relay_connection(conn, out)
            except ConnectionError as e:
                notice(f"[log relay] connection lost: {e}")
            else:
                notice("[log relay] disconnected, waiting for reconnect...")
    return served


def _exit_on_sigterm(signum, frame):
    sys.exit(0)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog='devicerun-relay',
        description='Relay log bytes from a TCP connection to stdout'
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--fd', type=int, help='Inherited listening socket file descriptor')
    source.add_argument('--port', type=int, help='Port to bind on all interfaces')
    args = parser.parse_args(argv)

    if args.fd is not None:
        sock = socket.socket(fileno=args.fd)
    else:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(('0.0.0.0', args.port))
        sock.listen(1)

    signal.signal(signal.SIGTERM, _exit_on_sigterm)

    try:
        serve(sock, sys.stdout.buffer)
    except KeyboardInterrupt:
        pass
    finally:
        sock.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
