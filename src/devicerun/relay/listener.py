"""
LogRelayListener - own the background log relay process for one deployment.

The port is bound here, in the deploying process, before anything is built,
so the app can never launch into an unbound port. The bound socket is then
handed to a child ``devicerun.relay.server`` process which does the actual
relaying, and the parent's copy is closed.

Port Collision Handling:
    The port is exclusive. A bind failure (another deployment or an old
    `nc -l` still holding it) degrades the session instead of failing the
    deployment: the app is still built, installed and launched, just without
    log relay.
"""

import logging
import subprocess
import sys
from typing import Optional

from devicerun.core.protocols import Logger, NetworkProvider, ProcessExecutor, ProcessHandle
from devicerun.deploy.base import LogRelaySession, RelayState
from devicerun.deploy.exceptions import CleanupError, ListenerBindFailure

logger = logging.getLogger(__name__)

RELAY_MODULE = "devicerun.relay.server"


class LogRelayListener:
    """
    Starts, waits on and stops the relay child process.

    start() at most once per instance; stop() any number of times.
    """

    def __init__(
        self,
        process_executor: ProcessExecutor,
        network: NetworkProvider,
        logger: Logger,
        stop_timeout: float = 5.0,
        python: str = sys.executable
    ):
        self.process = process_executor
        self.network = network
        self.log = logger
        self.stop_timeout = stop_timeout
        self.python = python
        self.session: Optional[LogRelaySession] = None
        self._handle: Optional[ProcessHandle] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.poll() is None

    def _bind(self, port: int):
        try:
            return self.network.bind_listener(port)
        except OSError as e:
            raise ListenerBindFailure(f"Could not bind log relay port {port}: {e}")

    def _degrade(self, session: LogRelaySession, error: Exception) -> LogRelaySession:
        session.degraded = True
        session.error = str(error)
        session.state = RelayState.TERMINATED
        self.log.warning(f"{error}\nContinuing without log relay.")
        return session

    def start(self, port: int) -> LogRelaySession:
        """
        Bind the port and start the relay child.

        Returns:
            LogRelaySession in LISTENING state, or TERMINATED with
            degraded=True if the port could not be bound or the child could
            not be started. Never raises for those cases.
        """
        if self.session is not None:
            raise RuntimeError("LogRelayListener.start() called twice")

        session = LogRelaySession(port=port)
        self.session = session

        try:
            sock = self._bind(port)
        except ListenerBindFailure as e:
            return self._degrade(session, e)

        try:
            fd = sock.fileno()
            cmd = [self.python, "-m", RELAY_MODULE, "--fd", str(fd)]
            self._handle = self.process.popen(cmd, pass_fds=(fd,))
        except OSError as e:
            return self._degrade(session, ListenerBindFailure(f"Could not start log relay: {e}"))
        finally:
            # The child holds its own copy of the socket now
            sock.close()

        session.pid = self._handle.pid
        session.state = RelayState.LISTENING
        self.log.info(f"Log relay listening on port {port} (pid {session.pid})")
        return session

    def wait(self) -> Optional[int]:
        """
        Block until the relay child exits.

        Returns:
            Child exit code, or None when no relay is running (degraded or
            never started), in which case this returns immediately
        """
        if self._handle is None or self._stopped:
            return None
        self.session.state = RelayState.STREAMING
        return self._handle.wait()

    def stop(self) -> None:
        """
        Terminate the relay child and release the port.

        Idempotent, and a no-op when start() never bound. Sends SIGTERM,
        waits stop_timeout seconds, then SIGKILL.

        Raises:
            CleanupError: The child survived SIGKILL for stop_timeout seconds
        """
        if self._stopped:
            return
        self._stopped = True

        handle = self._handle
        try:
            if handle is not None and handle.poll() is None:
                logger.debug("Stopping log relay (pid %s)", handle.pid)
                handle.terminate()
                try:
                    handle.wait(timeout=self.stop_timeout)
                except subprocess.TimeoutExpired:
                    self.log.warning(
                        f"Log relay did not exit within {self.stop_timeout}s, killing it"
                    )
                    handle.kill()
                    try:
                        handle.wait(timeout=self.stop_timeout)
                    except subprocess.TimeoutExpired:
                        raise CleanupError(f"Log relay process {handle.pid} could not be killed")
        finally:
            if self.session is not None:
                self.session.state = RelayState.TERMINATED
