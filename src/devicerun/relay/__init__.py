"""
Log relay subsystem.

The deployed app has no console, so it connects back to the host over TCP
and streams its log lines. This package owns the host side:

    - LogRelayListener: binds the port and supervises the relay process
    - relay.server: the relay loop run in that process (``python -m``)

relay.server must not be imported here, or ``python -m`` imports it twice.
"""

from .listener import LogRelayListener

__all__ = [
    "LogRelayListener",
]
