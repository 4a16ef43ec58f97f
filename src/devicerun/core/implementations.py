"""Production implementations of dependency injection protocols.

This module provides real implementations that wrap actual external
dependencies (console, filesystem, subprocess, platform, sockets). These are
used by the CLI commands.

For testing, use mocks or test doubles instead of these implementations.
"""

import os
import platform
import shutil
import socket
import subprocess
import sys
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Sequence, Union

from devicerun.core.protocols import ProcessResult


class ConsoleLogger:
    """Production logger that prints to console (stdout/stderr)."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def info(self, message: str) -> None:
        """Print info message to stdout."""
        print(message, flush=True)

    def warning(self, message: str) -> None:
        """Print warning message to stdout."""
        print(f"Warning: {message}", flush=True)

    def error(self, message: str) -> None:
        """Print error message to stderr."""
        print(f"Error: {message}", file=sys.stderr, flush=True)

    def debug(self, message: str) -> None:
        """Print debug message to stdout (only in verbose mode)."""
        if self.verbose:
            print(f"Debug: {message}", flush=True)


class RealFileSystemService:
    """Production filesystem service using real pathlib and shutil operations."""

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).exists()

    def is_file(self, path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def is_dir(self, path: Union[str, Path]) -> bool:
        return Path(path).is_dir()

    def file_size(self, path: Union[str, Path]) -> int:
        return Path(path).stat().st_size

    def read_file(self, path: Union[str, Path]) -> str:
        with open(path, 'r') as f:
            return f.read()

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None:
        Path(path).mkdir(parents=parents, exist_ok=exist_ok)

    def copy_file(self, src: Union[str, Path], dst: Union[str, Path]) -> None:
        shutil.copyfile(src, dst)


class SubprocessHandle:
    """Wrapper around subprocess.Popen handle."""

    def __init__(self, popen_handle: subprocess.Popen):
        """Initialize with actual subprocess.Popen object."""
        self._handle = popen_handle

    @property
    def pid(self) -> int:
        return self._handle.pid

    def poll(self) -> Optional[int]:
        return self._handle.poll()

    def wait(self, timeout: Optional[float] = None) -> int:
        return self._handle.wait(timeout=timeout)

    def terminate(self) -> None:
        self._handle.terminate()

    def kill(self) -> None:
        self._handle.kill()


class SubprocessExecutor:
    """Production process executor using real subprocess."""

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> ProcessResult:
        """Run command and capture its output.

        A command that cannot be started at all is reported like the shell
        would (exit code 127) rather than raised, and one killed at its
        timeout as exit code 124 with whatever output it produced.
        """
        try:
            result = subprocess.run(
                list(cmd),
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except FileNotFoundError as e:
            return ProcessResult(returncode=127, stdout="", stderr=f"{e}\n")
        except subprocess.TimeoutExpired as e:
            return ProcessResult.timed_out(cmd, timeout, e.stdout, e.stderr)
        return ProcessResult(result.returncode, result.stdout or "", result.stderr or "")

    def popen(
        self,
        cmd: Sequence[str],
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        pass_fds: Sequence[int] = ()
    ) -> SubprocessHandle:
        """Execute command and return process handle."""
        handle = subprocess.Popen(
            list(cmd),
            stdout=stdout,
            stderr=stderr,
            cwd=cwd,
            env=env,
            pass_fds=tuple(pass_fds)
        )
        return SubprocessHandle(handle)


class SystemEnvironmentProvider:
    """Production environment provider using real os and platform modules."""

    def get_environ(self) -> Dict[str, str]:
        return dict(os.environ)

    def get_system_type(self) -> str:
        return platform.system()

    def get_machine_arch(self) -> str:
        return platform.machine()


class SystemToolLocator:
    """Production tool locator using real shutil.which."""

    def find_tool(self, tool_name: str) -> Optional[str]:
        return shutil.which(tool_name)

    def has_tool(self, tool_name: str) -> bool:
        return self.find_tool(tool_name) is not None


class YamlConfigLoader:
    """Production config loader using real YAML parser."""

    def __init__(self, filesystem: 'RealFileSystemService'):
        """Initialize with filesystem service for reading files."""
        self.fs = filesystem

    def load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file and return parsed dictionary (empty file → {})."""
        content = self.fs.read_file(path)
        return yaml.safe_load(content) or {}


class SocketNetworkProvider:
    """Production network provider using the socket module.

    Interface lookup shells out to macOS ``ipconfig getifaddr`` because the
    standard library has no portable per-interface address query.
    """

    def __init__(self, process_executor: Optional[SubprocessExecutor] = None):
        self.process = process_executor or SubprocessExecutor()

    def interface_address(self, interface: str) -> Optional[str]:
        result = self.process.run(['ipconfig', 'getifaddr', interface], timeout=5)
        address = result.stdout.strip()
        if result.returncode != 0 or not address:
            return None
        return address

    def default_route_address(self) -> Optional[str]:
        # UDP connect sends no packets; it only selects the outbound interface
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            address = s.getsockname()[0]
        except OSError:
            return None
        finally:
            s.close()
        if address.startswith("127.") or address == "0.0.0.0":
            return None
        return address

    def bind_listener(self, port: int, host: str = "0.0.0.0", backlog: int = 1) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            # REUSEADDR only skips TIME_WAIT; a live listener still blocks the bind
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        return sock
