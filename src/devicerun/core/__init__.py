"""Core dependency injection infrastructure for devicerun.

This module provides Protocol-based abstractions that enable dependency
injection and testability throughout the codebase. All external dependencies
(console, filesystem, subprocess, environment, sockets) are abstracted via
Protocols with production implementations.

Design:
- Protocol-based abstractions (typing.Protocol) for structural typing
- Production implementations for real-world use
- Easy mocking for unit tests
"""

from devicerun.core.protocols import (
    Logger,
    FileSystemService,
    ProcessExecutor,
    ProcessHandle,
    ProcessResult,
    EnvironmentProvider,
    ToolLocator,
    ConfigLoader,
    NetworkProvider,
)

from devicerun.core.implementations import (
    ConsoleLogger,
    RealFileSystemService,
    SubprocessExecutor,
    SubprocessHandle,
    SystemEnvironmentProvider,
    SystemToolLocator,
    YamlConfigLoader,
    SocketNetworkProvider,
)

__all__ = [
    # Protocols
    "Logger",
    "FileSystemService",
    "ProcessExecutor",
    "ProcessHandle",
    "ProcessResult",
    "EnvironmentProvider",
    "ToolLocator",
    "ConfigLoader",
    "NetworkProvider",
    # Implementations
    "ConsoleLogger",
    "RealFileSystemService",
    "SubprocessExecutor",
    "SubprocessHandle",
    "SystemEnvironmentProvider",
    "SystemToolLocator",
    "YamlConfigLoader",
    "SocketNetworkProvider",
]
