"""Unit tests for DeploymentPipeline.

Every collaborator is mocked; the property under test is the state machine:
stage order, failure classification, and that the log relay listener is
stopped exactly once however run() ends.
"""

import subprocess
from pathlib import Path
from unittest.mock import Mock

import pytest

from devicerun.core.protocols import (
    ConfigLoader,
    EnvironmentProvider,
    Logger,
    ProcessExecutor,
    ProcessResult,
)
from devicerun.deploy.base import (
    DEVICE_ARM64,
    SIMULATOR_ARM64,
    ArtifactDescriptor,
    DeploymentRequest,
    DeviceRecord,
    LogRelaySession,
    PipelineState,
    Platform,
    Profile,
    Reachability,
    RelayState,
)
from devicerun.deploy.catalog import DeviceCatalog
from devicerun.deploy.control import DeviceCtlControl
from devicerun.deploy.exceptions import (
    CompileError,
    DeviceLocked,
    InstallFailure,
    LaunchFailure,
    ToolchainUnavailable,
)
from devicerun.deploy.pipeline import DeploymentPipeline
from devicerun.relay.listener import LogRelayListener
from devicerun.utils.build_helper import ArtifactBuilder
from devicerun.utils.config import load_config
from devicerun.utils.xcode import AppBundleBuilder

APP_PATH = Path("/derived/Build/Products/Debug-iphoneos/GPUIiOSHello.app")


def device(core, legacy, reachability):
    return DeviceRecord(
        core_identity=core,
        legacy_identity=legacy,
        display_name=f"iPhone {core}",
        platform="iOS",
        is_physical=True,
        reachability=reachability,
    )


class TestDeploymentPipeline:
    """Test the pipeline with mocked collaborators."""

    def setup_method(self):
        self.config = load_config(Mock(spec=ConfigLoader), file_exists=lambda p: False)
        self.catalog = Mock(spec=DeviceCatalog)
        self.artifacts = Mock(spec=ArtifactBuilder)
        self.bundles = Mock(spec=AppBundleBuilder)
        self.control = Mock(spec=DeviceCtlControl)
        self.control_factory = Mock(return_value=self.control)
        self.listener = Mock(spec=LogRelayListener)
        self.env = Mock(spec=EnvironmentProvider)
        self.logger = Mock(spec=Logger)

        self.catalog.list_physical_devices.return_value = [
            device("A-core", "A-legacy", Reachability.ACTIVE),
            device("B-core", "B-legacy", Reachability.OFFLINE_KNOWN),
        ]
        self.env.get_machine_arch.return_value = "arm64"
        self.library = self.config.artifact_dir / "debug-iphoneos" / self.config.library_name
        self.artifacts.build.return_value = ArtifactDescriptor(
            path=self.library, profile=Profile.DEBUG, targets=(DEVICE_ARM64,)
        )
        self.bundles.build.return_value = APP_PATH
        self.listener.start.return_value = LogRelaySession(
            port=9632, state=RelayState.LISTENING, pid=4242
        )
        self.listener.wait.return_value = 0

        self.pipeline = DeploymentPipeline(
            config=self.config,
            catalog=self.catalog,
            artifact_builder=self.artifacts,
            bundle_builder=self.bundles,
            control_factory=self.control_factory,
            listener=self.listener,
            env_provider=self.env,
            logger=self.logger
        )

    # Success path

    def test_success_terminates_with_exit_zero(self):
        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.state is PipelineState.TERMINATED
        assert outcome.success
        assert outcome.exit_code == 0
        assert outcome.failed_stage is None
        self.listener.stop.assert_called_once()

    def test_success_visits_every_stage_in_order(self):
        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.history == [
            PipelineState.IDLE,
            PipelineState.SELECTING,
            PipelineState.BUILDING,
            PipelineState.INSTALLING,
            PipelineState.LAUNCHING,
            PipelineState.STREAMING,
            PipelineState.TERMINATED,
        ]

    def test_selected_identities_go_to_the_right_tools(self):
        """Legacy identity to xcodebuild, core identity to install/launch."""
        self.pipeline.run(DeploymentRequest(team_id="TEAM123"))

        bundle_args = self.bundles.build.call_args[0]
        assert bundle_args[0] is Platform.DEVICE
        assert bundle_args[2] == "A-legacy"
        assert bundle_args[3] == "TEAM123"
        assert bundle_args[4] == self.library.parent
        self.control.install.assert_called_once_with("A-core", APP_PATH)
        self.control.launch.assert_called_once_with(
            "A-core", self.config.bundle_id, terminate_existing=True
        )

    def test_listener_starts_after_selection_and_before_build(self):
        order = []
        self.catalog.list_physical_devices.side_effect = lambda *a: order.append("select") or [
            device("A-core", "A-legacy", Reachability.ACTIVE)
        ]
        self.listener.start.side_effect = lambda port: order.append("listen") or LogRelaySession(
            port=port, state=RelayState.LISTENING
        )
        self.artifacts.build.side_effect = lambda *a, **kw: order.append("build") or ArtifactDescriptor(
            path=self.library, profile=Profile.DEBUG, targets=(DEVICE_ARM64,)
        )

        self.pipeline.run(DeploymentRequest(log_port=9700))

        assert order == ["select", "listen", "build"]
        self.listener.start.assert_called_once_with(9700)

    def test_library_is_built_for_device_with_relay_port(self):
        self.pipeline.run(DeploymentRequest(relay_address="10.0.0.5:9632"))

        args, kwargs = self.artifacts.build.call_args
        assert args[0] == (DEVICE_ARM64,)
        assert args[1] is Profile.DEBUG
        assert args[2] == self.config.artifact_dir / "debug-iphoneos"
        assert kwargs == {"relay_port": 9632, "relay_address": "10.0.0.5:9632"}

    def test_streams_until_relay_exits(self):
        self.pipeline.run(DeploymentRequest())

        self.listener.wait.assert_called_once()

    # Selection

    def test_override_skips_catalog(self):
        outcome = self.pipeline.run(DeploymentRequest(device_override="X"))

        self.catalog.list_physical_devices.assert_not_called()
        assert outcome.device.core == "X"
        assert self.bundles.build.call_args[0][2] == "X"
        self.control.install.assert_called_once_with("X", APP_PATH)

    def test_simulator_deploys_to_booted(self):
        self.artifacts.build.return_value = ArtifactDescriptor(
            path=self.library, profile=Profile.DEBUG, targets=(SIMULATOR_ARM64,)
        )

        outcome = self.pipeline.run(DeploymentRequest(platform=Platform.SIMULATOR))

        assert outcome.success
        self.catalog.list_physical_devices.assert_not_called()
        self.control_factory.assert_called_once_with(Platform.SIMULATOR)
        assert self.artifacts.build.call_args[0][0] == (SIMULATOR_ARM64,)
        self.control.install.assert_called_once_with("booted", APP_PATH)

    def test_no_device_fails_at_selection(self):
        self.catalog.list_physical_devices.return_value = []

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.state is PipelineState.FAILED
        assert outcome.failed_stage is PipelineState.SELECTING
        assert outcome.reason == "NoDeviceFound"
        assert outcome.exit_code != 0
        self.listener.start.assert_not_called()
        self.artifacts.build.assert_not_called()
        self.listener.stop.assert_called_once()

    def test_missing_xcrun_fails_at_selection(self):
        self.catalog.list_physical_devices.side_effect = ToolchainUnavailable("xcrun is required")

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.failed_stage is PipelineState.SELECTING
        assert outcome.reason == "ToolchainUnavailable"

    # Stage failures

    def test_build_failure(self):
        self.artifacts.build.side_effect = CompileError("cargo build failed", output="error[E0308]")

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.state is PipelineState.FAILED
        assert outcome.failed_stage is PipelineState.BUILDING
        assert outcome.reason == "CompileError"
        assert outcome.exit_code == 1
        self.control.install.assert_not_called()
        self.listener.stop.assert_called_once()

    def test_install_failure_keeps_raw_output(self):
        self.control.install.side_effect = InstallFailure(
            "Install failed on A-core (exit code 1):\nApplicationVerificationFailed"
        )

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.failed_stage is PipelineState.INSTALLING
        assert "ApplicationVerificationFailed" in outcome.message
        self.control.launch.assert_not_called()
        self.listener.stop.assert_called_once()

    def test_install_timeout_fails_at_installing(self):
        process = Mock(spec=ProcessExecutor)
        process.run.side_effect = subprocess.TimeoutExpired(["xcrun", "devicectl"], 300)
        self.control_factory.return_value = DeviceCtlControl(process)

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.state is PipelineState.FAILED
        assert outcome.failed_stage is PipelineState.INSTALLING
        assert outcome.reason == "InstallFailure"
        assert "timed out" in outcome.message
        self.listener.stop.assert_called_once()

    def test_launch_timeout_fails_at_launching(self):
        process = Mock(spec=ProcessExecutor)
        process.run.side_effect = [
            ProcessResult(0, "", ""),
            subprocess.TimeoutExpired(["xcrun", "devicectl"], 120),
        ]
        self.control_factory.return_value = DeviceCtlControl(process)

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.failed_stage is PipelineState.LAUNCHING
        assert outcome.reason == "LaunchFailure"
        self.listener.wait.assert_not_called()
        self.listener.stop.assert_called_once()

    def test_launch_failure(self):
        self.control.launch.side_effect = LaunchFailure("Launch failed (exit code 1):\ncrash")

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.failed_stage is PipelineState.LAUNCHING
        assert outcome.reason == "LaunchFailure"
        self.listener.wait.assert_not_called()
        self.listener.stop.assert_called_once()

    def test_locked_device_fails_with_remediation(self):
        self.control.launch.side_effect = DeviceLocked(
            DeviceLocked.remediation, output="BSErrorCodeDescription = Locked"
        )

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.state is PipelineState.FAILED
        assert outcome.failed_stage is PipelineState.LAUNCHING
        assert outcome.reason == "DeviceLocked"
        assert outcome.exit_code != 0
        assert "Unlock" in outcome.message
        self.logger.error.assert_called_once()
        self.listener.stop.assert_called_once()

    # Relay

    def test_degraded_relay_still_terminates(self):
        """A listener that could not bind does not affect the deployment."""
        self.listener.start.return_value = LogRelaySession(
            port=9632, state=RelayState.TERMINATED, degraded=True, error="Address already in use"
        )

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.state is PipelineState.TERMINATED
        assert outcome.exit_code == 0
        assert outcome.relay.degraded
        self.control.launch.assert_called_once()
        self.listener.wait.assert_not_called()
        self.listener.stop.assert_called_once()

    def test_degraded_relay_with_install_failure(self):
        self.listener.start.return_value = LogRelaySession(
            port=9632, state=RelayState.TERMINATED, degraded=True
        )
        self.control.install.side_effect = InstallFailure("no space left")

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.failed_stage is PipelineState.INSTALLING
        assert outcome.exit_code == 1

    def test_relay_disabled(self):
        outcome = self.pipeline.run(DeploymentRequest(log_relay=False))

        assert outcome.success
        assert outcome.relay is None
        self.listener.start.assert_not_called()
        assert self.artifacts.build.call_args[1]["relay_port"] is None
        self.listener.stop.assert_called_once()

    # Interruption

    def test_interrupt_while_streaming_is_normal_termination(self):
        self.listener.wait.side_effect = KeyboardInterrupt

        outcome = self.pipeline.run(DeploymentRequest())

        assert outcome.state is PipelineState.TERMINATED
        assert outcome.exit_code == 0
        self.listener.stop.assert_called_once()

    def test_interrupt_during_build_stops_listener_and_propagates(self):
        self.artifacts.build.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            self.pipeline.run(DeploymentRequest())

        self.listener.stop.assert_called_once()
        self.control.install.assert_not_called()
        assert self.pipeline.state is PipelineState.FAILED

    def test_interrupt_during_install_stops_listener(self):
        self.control.install.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            self.pipeline.run(DeploymentRequest())

        self.listener.stop.assert_called_once()

    def test_unexpected_error_stops_listener_and_propagates(self):
        self.control.launch.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError, match="bug"):
            self.pipeline.run(DeploymentRequest())

        self.listener.stop.assert_called_once()
