"""
Device control - install and launch an app through the device layer.

Targets:
    DeviceCtlControl: physical devices via ``xcrun devicectl`` (Xcode 15+)
    SimctlControl: simulators via ``xcrun simctl``

Both take the *core* identity; the legacy identity is only for xcodebuild.
Install overwrites any existing copy and launch terminates a running
instance first, so rerunning a deployment is idempotent.
"""

import re
import subprocess
from pathlib import Path
from typing import Protocol, Sequence, Union, runtime_checkable

from devicerun.core.protocols import ProcessExecutor, ProcessResult
from .exceptions import InstallFailure, LaunchFailure, DeviceLocked

INSTALL_TIMEOUT = 300
LAUNCH_TIMEOUT = 120

_LOCKED_PATTERN = re.compile(r"locked", re.IGNORECASE)


def is_locked_failure(output: str) -> bool:
    """
    True if launch output says the device is locked.

    devicectl reports this as "... could not be, unlocked" or
    "BSErrorCodeDescription = Locked"; both contain "locked".
    """
    return bool(_LOCKED_PATTERN.search(output or ""))


def run_device_command(process: ProcessExecutor, cmd: Sequence[str], timeout: float) -> ProcessResult:
    """Run a device command; a hang past timeout becomes a failed result."""
    try:
        return process.run(cmd, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        return ProcessResult.timed_out(cmd, timeout, e.stdout, e.stderr)


def classify_launch_failure(result: ProcessResult) -> LaunchFailure:
    """Turn a failed launch into DeviceLocked or a generic LaunchFailure."""
    output = result.output.strip()
    if is_locked_failure(output):
        return DeviceLocked(DeviceLocked.remediation, output=output)
    return LaunchFailure(
        f"Launch failed (exit code {result.returncode}):\n{output}",
        output=output
    )


@runtime_checkable
class DeviceControl(Protocol):
    """
    Interface for the device management control commands.

    Implementations:
        - DeviceCtlControl: physical devices
        - SimctlControl: simulators
    """

    def install(self, core_identity: str, app_path: Union[str, Path]) -> None:
        """
        Install (or overwrite) an app bundle on the device.

        Raises:
            InstallFailure: With the tool's raw output
        """
        ...

    def launch(self, core_identity: str, bundle_id: str, terminate_existing: bool = True) -> None:
        """
        Launch an installed app.

        Raises:
            DeviceLocked: Device refused because it is locked
            LaunchFailure: Any other failure, with the tool's raw output
        """
        ...


class DeviceCtlControl:
    """Install/launch on physical devices via ``xcrun devicectl``."""

    def __init__(self, process_executor: ProcessExecutor):
        self.process = process_executor

    def _devicectl_cmd(self, *args: str) -> list:
        """Build an xcrun devicectl command."""
        return ["xcrun", "devicectl", *args]

    def install(self, core_identity: str, app_path: Union[str, Path]) -> None:
        cmd = self._devicectl_cmd(
            "device", "install", "app", "--device", core_identity, str(app_path)
        )
        result = run_device_command(self.process, cmd, INSTALL_TIMEOUT)
        if result.returncode != 0:
            raise InstallFailure(
                f"Install failed on {core_identity} (exit code {result.returncode}):\n"
                f"{result.output.strip()}",
                output=result.output
            )

    def launch(self, core_identity: str, bundle_id: str, terminate_existing: bool = True) -> None:
        args = ["device", "process", "launch"]
        if terminate_existing:
            args.append("--terminate-existing")
        args += ["--device", core_identity, bundle_id]
        result = run_device_command(self.process, self._devicectl_cmd(*args), LAUNCH_TIMEOUT)
        if result.returncode != 0:
            raise classify_launch_failure(result)


class SimctlControl:
    """Install/launch on simulators via ``xcrun simctl``.

    The identity may be a simulator UDID or the literal "booted".
    """

    def __init__(self, process_executor: ProcessExecutor):
        self.process = process_executor

    def install(self, core_identity: str, app_path: Union[str, Path]) -> None:
        cmd = ["xcrun", "simctl", "install", core_identity, str(app_path)]
        result = run_device_command(self.process, cmd, INSTALL_TIMEOUT)
        if result.returncode != 0:
            raise InstallFailure(
                f"Simulator install failed on {core_identity} (exit code {result.returncode}):\n"
                f"{result.output.strip()}\n\n"
                f"Is a simulator booted? Check with: xcrun simctl list devices booted",
                output=result.output
            )

    def launch(self, core_identity: str, bundle_id: str, terminate_existing: bool = True) -> None:
        cmd = ["xcrun", "simctl", "launch"]
        if terminate_existing:
            cmd.append("--terminate-running-process")
        cmd += [core_identity, bundle_id]
        result = run_device_command(self.process, cmd, LAUNCH_TIMEOUT)
        if result.returncode != 0:
            raise classify_launch_failure(result)
