"""Protocol definitions for dependency injection.

This module defines Protocol-based abstractions for every external dependency
the deployment orchestrator touches: the console, the filesystem, child
processes, the host environment, tool discovery, configuration files and
network sockets.

Protocols use structural typing, so any class implementing these methods
satisfies the Protocol without explicit inheritance. Tests pass
``Mock(spec=Protocol)`` instances instead of the production classes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Dict, Any, Optional, List, Sequence, Union
import socket


# Exit status reported for a command killed at its timeout (as timeout(1) does)
TIMEOUT_EXIT_CODE = 124


@dataclass
class ProcessResult:
    """Captured result of a finished command."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """stdout and stderr joined, as an operator would see them."""
        return f"{self.stdout}{self.stderr}"

    @classmethod
    def timed_out(cls, cmd: Sequence[str], timeout: Optional[float],
                  stdout: Any = None, stderr: Any = None) -> "ProcessResult":
        """Result for a command that was killed after timeout seconds."""
        def _text(value: Any) -> str:
            if isinstance(value, bytes):
                return value.decode('utf-8', errors='replace')
            return value or ""

        message = f"{cmd[0] if cmd else 'command'} timed out after {timeout} seconds\n"
        return cls(TIMEOUT_EXIT_CODE, _text(stdout), _text(stderr) + message)


class Logger(Protocol):
    """Abstraction for operator-facing output.

    Replaces direct print() statements throughout the codebase.
    """

    def info(self, message: str) -> None:
        """Log informational message."""
        ...

    def warning(self, message: str) -> None:
        """Log warning message."""
        ...

    def error(self, message: str) -> None:
        """Log error message."""
        ...

    def debug(self, message: str) -> None:
        """Log debug message."""
        ...


class FileSystemService(Protocol):
    """Abstraction for filesystem operations used by the builders."""

    def exists(self, path: Union[str, Path]) -> bool:
        """Check if path exists."""
        ...

    def is_file(self, path: Union[str, Path]) -> bool:
        """Check if path is a file."""
        ...

    def is_dir(self, path: Union[str, Path]) -> bool:
        """Check if path is a directory."""
        ...

    def file_size(self, path: Union[str, Path]) -> int:
        """Size of a file in bytes."""
        ...

    def read_file(self, path: Union[str, Path]) -> str:
        """Read entire file as string."""
        ...

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None:
        """Create directory (with parents if specified)."""
        ...

    def copy_file(self, src: Union[str, Path], dst: Union[str, Path]) -> None:
        """Copy file contents verbatim from src to dst."""
        ...


class ProcessHandle(Protocol):
    """Abstraction for a running child process.

    Wraps subprocess.Popen object methods.
    """

    @property
    def pid(self) -> int:
        ...

    def poll(self) -> Optional[int]:
        """Check if process has terminated. Returns exit code or None."""
        ...

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for process to terminate and return exit code.

        Raises subprocess.TimeoutExpired if timeout elapses first.
        """
        ...

    def terminate(self) -> None:
        """Ask the process to exit (SIGTERM)."""
        ...

    def kill(self) -> None:
        """Force the process to exit (SIGKILL)."""
        ...


class ProcessExecutor(Protocol):
    """Abstraction for process execution.

    ``run`` is for short blocking commands whose output we inspect,
    ``popen`` is for long-lived children such as the log relay server.
    """

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> ProcessResult:
        """Run command to completion, capturing stdout/stderr as text."""
        ...

    def popen(
        self,
        cmd: Sequence[str],
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        pass_fds: Sequence[int] = ()
    ) -> ProcessHandle:
        """Execute command and return process handle."""
        ...


class EnvironmentProvider(Protocol):
    """Abstraction for host environment access.

    Wraps os.environ and the platform module so tests can pretend to be an
    Intel or Apple Silicon Mac.
    """

    def get_environ(self) -> Dict[str, str]:
        """Get copy of environment variables."""
        ...

    def get_system_type(self) -> str:
        """Get system type ('Darwin', 'Linux', 'Windows', etc.)."""
        ...

    def get_machine_arch(self) -> str:
        """Get host CPU architecture ('arm64', 'x86_64', ...)."""
        ...


class ToolLocator(Protocol):
    """Abstraction for external tool discovery.

    Wraps shutil.which() so tests don't need Xcode or a Rust toolchain.
    """

    def find_tool(self, tool_name: str) -> Optional[str]:
        """Find tool in PATH and return absolute path, or None if not found."""
        ...

    def has_tool(self, tool_name: str) -> bool:
        """Check if tool exists in PATH."""
        ...


class ConfigLoader(Protocol):
    """Abstraction for configuration file loading."""

    def load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file and return parsed dictionary."""
        ...


class NetworkProvider(Protocol):
    """Abstraction for the host network.

    Covers the two things the orchestrator needs: finding a LAN address the
    device can reach, and binding the log relay port.
    """

    def interface_address(self, interface: str) -> Optional[str]:
        """IPv4 address assigned to a named interface, or None."""
        ...

    def default_route_address(self) -> Optional[str]:
        """IPv4 address of the interface carrying the default route, or None."""
        ...

    def bind_listener(self, port: int, host: str = "0.0.0.0", backlog: int = 1) -> socket.socket:
        """Bind and listen on a TCP port. Raises OSError if unavailable."""
        ...
