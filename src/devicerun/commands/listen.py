"""Run the log relay in the foreground without deploying anything.

Useful when the app was launched from Xcode but built with a relay address
embedded: start this, then relaunch the app.
"""
import os
import sys

from devicerun.core import (
    ConsoleLogger,
    RealFileSystemService,
    SocketNetworkProvider,
    YamlConfigLoader,
)
from devicerun.relay import server
from devicerun.utils.config import load_config


def setup_parser(parser):
    """Setup argument parser for listen command"""
    parser.add_argument(
        '--port',
        type=int,
        help='Port to listen on (default: from config, 9632)'
    )


def execute(args):
    """Serve relay connections until interrupted"""
    logger = ConsoleLogger(verbose=args.verbose)

    try:
        config = load_config(YamlConfigLoader(RealFileSystemService()), args.config, env=os.environ)
    except ValueError as e:
        logger.error(str(e))
        return 1

    port = args.port or config.log_port
    try:
        sock = SocketNetworkProvider().bind_listener(port)
    except OSError as e:
        logger.error(f"Could not bind log relay port {port}: {e}")
        return 1

    logger.info(f"Listening for app logs on port {port} (Ctrl-C to stop)...")
    try:
        server.serve(sock, sys.stdout.buffer)
    except KeyboardInterrupt:
        logger.info("\nStopped.")
    finally:
        sock.close()
    return 0
