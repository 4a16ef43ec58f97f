"""Unit tests for devicectl / simctl install and launch."""

import subprocess
from pathlib import Path
from unittest.mock import Mock

import pytest

from devicerun.core.protocols import ProcessExecutor, ProcessResult
from devicerun.deploy.control import (
    DeviceControl,
    DeviceCtlControl,
    SimctlControl,
    classify_launch_failure,
    is_locked_failure,
)
from devicerun.deploy.exceptions import DeviceLocked, InstallFailure, LaunchFailure


LOCKED_OUTPUT = (
    "ERROR: The application failed to launch. (com.apple.dt.CoreDeviceError error 10002.)\n"
    "BSErrorCodeDescription = Locked\n"
)


class TestLockedClassification:
    """Test lock detection on launch output."""

    @pytest.mark.parametrize("output", [
        LOCKED_OUTPUT,
        "Unable to launch because the device was not, or could not be, unlocked.",
        "DEVICE LOCKED",
    ])
    def test_locked_outputs(self, output):
        assert is_locked_failure(output)

    @pytest.mark.parametrize("output", ["", None, "No such bundle identifier"])
    def test_other_outputs(self, output):
        assert not is_locked_failure(output)

    def test_locked_failure_carries_remediation_and_raw_output(self):
        error = classify_launch_failure(ProcessResult(1, "", LOCKED_OUTPUT))

        assert isinstance(error, DeviceLocked)
        assert str(error) == DeviceLocked.remediation
        assert "BSErrorCodeDescription" in error.output

    def test_other_failure_is_generic_launch_failure(self):
        error = classify_launch_failure(ProcessResult(3, "", "bundle not installed"))

        assert type(error) is LaunchFailure
        assert "bundle not installed" in str(error)
        assert "exit code 3" in str(error)


class TestDeviceCtlControl:
    """Test devicectl command construction and error mapping."""

    def setup_method(self):
        self.process = Mock(spec=ProcessExecutor)
        self.process.run.return_value = ProcessResult(0, "", "")
        self.control = DeviceCtlControl(self.process)

    def test_satisfies_protocol(self):
        assert isinstance(self.control, DeviceControl)

    def test_install_uses_core_identity(self):
        self.control.install("CORE-1", Path("/build/App.app"))

        cmd = self.process.run.call_args[0][0]
        assert cmd == ["xcrun", "devicectl", "device", "install", "app",
                       "--device", "CORE-1", "/build/App.app"]

    def test_install_failure_includes_raw_output(self):
        self.process.run.return_value = ProcessResult(1, "", "The device rejected the install")

        with pytest.raises(InstallFailure, match="device rejected the install"):
            self.control.install("CORE-1", "/build/App.app")

    def test_launch_terminates_existing_instance(self):
        self.control.launch("CORE-1", "dev.example.App")

        cmd = self.process.run.call_args[0][0]
        assert cmd == ["xcrun", "devicectl", "device", "process", "launch",
                       "--terminate-existing", "--device", "CORE-1", "dev.example.App"]

    def test_launch_on_locked_device_raises_device_locked(self):
        self.process.run.return_value = ProcessResult(1, "", LOCKED_OUTPUT)

        with pytest.raises(DeviceLocked):
            self.control.launch("CORE-1", "dev.example.App")

    def test_launch_failure(self):
        self.process.run.return_value = ProcessResult(1, "", "App crashed on launch")

        with pytest.raises(LaunchFailure, match="App crashed") as exc_info:
            self.control.launch("CORE-1", "dev.example.App")
        assert not isinstance(exc_info.value, DeviceLocked)

    def test_install_timeout_raises_install_failure(self):
        self.process.run.side_effect = subprocess.TimeoutExpired(["xcrun"], 300, output=b"Copying files\n")

        with pytest.raises(InstallFailure, match="timed out after 300 seconds") as exc_info:
            self.control.install("CORE-1", "/build/App.app")
        assert "exit code 124" in str(exc_info.value)
        assert "Copying files" in exc_info.value.output

    def test_install_timed_out_result_raises_install_failure(self):
        self.process.run.return_value = ProcessResult.timed_out(["xcrun"], 300)

        with pytest.raises(InstallFailure, match="exit code 124"):
            self.control.install("CORE-1", "/build/App.app")

    def test_launch_timeout_raises_launch_failure(self):
        self.process.run.side_effect = subprocess.TimeoutExpired(["xcrun"], 120)

        with pytest.raises(LaunchFailure, match="timed out after 120 seconds") as exc_info:
            self.control.launch("CORE-1", "dev.example.App")
        assert not isinstance(exc_info.value, DeviceLocked)


class TestSimctlControl:
    """Test simctl command construction."""

    def setup_method(self):
        self.process = Mock(spec=ProcessExecutor)
        self.process.run.return_value = ProcessResult(0, "", "")
        self.control = SimctlControl(self.process)

    def test_install_on_booted_simulator(self):
        self.control.install("booted", "/build/App.app")

        cmd = self.process.run.call_args[0][0]
        assert cmd == ["xcrun", "simctl", "install", "booted", "/build/App.app"]

    def test_launch_terminates_running_process(self):
        self.control.launch("booted", "dev.example.App")

        cmd = self.process.run.call_args[0][0]
        assert cmd == ["xcrun", "simctl", "launch", "--terminate-running-process",
                       "booted", "dev.example.App"]

    def test_install_failure_suggests_booting(self):
        self.process.run.return_value = ProcessResult(149, "", "No devices are booted.")

        with pytest.raises(InstallFailure, match="simctl list devices booted"):
            self.control.install("booted", "/build/App.app")

    def test_install_timeout_raises_install_failure(self):
        self.process.run.side_effect = subprocess.TimeoutExpired(["xcrun"], 300)

        with pytest.raises(InstallFailure, match="timed out"):
            self.control.install("booted", "/build/App.app")

    def test_launch_timeout_raises_launch_failure(self):
        self.process.run.side_effect = subprocess.TimeoutExpired(["xcrun"], 120)

        with pytest.raises(LaunchFailure, match="timed out"):
            self.control.launch("booted", "dev.example.App")
