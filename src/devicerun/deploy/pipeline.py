"""
DeploymentPipeline - select → build → install → launch → stream.

State machine:

    IDLE → SELECTING → BUILDING → INSTALLING → LAUNCHING → STREAMING → TERMINATED
                  \\__________\\___________\\___________\\→ FAILED(stage)

The log relay listener is started right after selection, before the build,
and is stopped exactly once on every way out of run(): success, any stage
failure, Ctrl-C/SIGTERM at any point, or an unexpected exception.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Optional

from devicerun.core.protocols import EnvironmentProvider, Logger
from devicerun.relay.listener import LogRelayListener
from devicerun.utils.build_helper import ArtifactBuilder, build_targets_for
from devicerun.utils.config import DeployConfig
from devicerun.utils.xcode import AppBundleBuilder
from .base import (
    DeploymentOutcome,
    DeploymentRequest,
    DeviceIdentity,
    Platform,
    PipelineState,
)
from .catalog import DeviceCatalog
from .control import DeviceControl
from .exceptions import DeploymentError, DeviceLocked
from .factory import BOOTED_SIMULATOR
from .selector import select_device

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1


class DeploymentPipeline:
    """
    Runs one deployment attempt with injected collaborators.

    Args:
        config: Resolved configuration (bundle id, artifact dir, ...)
        catalog: Physical device catalog
        artifact_builder: Native library builder
        bundle_builder: .app builder
        control_factory: Returns the install/launch layer for a platform
        listener: Log relay listener owned by this attempt
        env_provider: Host environment (for the host architecture)
        logger: Operator-facing output

    A pipeline instance runs one attempt; create a new one (with a new
    listener) per deployment.
    """

    def __init__(
        self,
        config: DeployConfig,
        catalog: DeviceCatalog,
        artifact_builder: ArtifactBuilder,
        bundle_builder: AppBundleBuilder,
        control_factory: Callable[[Platform], DeviceControl],
        listener: LogRelayListener,
        env_provider: EnvironmentProvider,
        logger: Logger
    ):
        self.config = config
        self.catalog = catalog
        self.artifacts = artifact_builder
        self.bundles = bundle_builder
        self.control_factory = control_factory
        self.listener = listener
        self.env = env_provider
        self.log = logger
        self.state = PipelineState.IDLE
        self.history = [PipelineState.IDLE]

    def _transition(self, state: PipelineState) -> None:
        logger.debug("pipeline: %s → %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @contextmanager
    def _relay_scope(self):
        """Guarantee a single listener stop on every exit path."""
        try:
            yield self.listener
        finally:
            self.listener.stop()

    def _select(self, request: DeploymentRequest) -> DeviceIdentity:
        if request.device_override:
            identity = select_device([], override=request.device_override)
        elif request.platform is Platform.SIMULATOR:
            identity = DeviceIdentity.from_override(BOOTED_SIMULATOR)
        else:
            identity = select_device(self.catalog.list_physical_devices("iOS"))

        if identity.core == identity.legacy:
            self.log.info(f"Using device: {identity.core}")
        else:
            self.log.info(
                f"Using device: {identity.display_name} "
                f"(devicectl {identity.core}, xcodebuild {identity.legacy})"
            )
        return identity

    def _build(self, request: DeploymentRequest, identity: DeviceIdentity):
        targets = build_targets_for(
            request.platform,
            self.env.get_machine_arch(),
            self.config.universal_simulator
        )
        library_dir = self.config.artifact_dir / f"{request.profile.value}-{request.platform.sdk}"
        relay_port = request.log_port if request.log_relay else None

        descriptor = self.artifacts.build(
            targets,
            request.profile,
            library_dir,
            relay_port=relay_port,
            relay_address=request.relay_address
        )

        return self.bundles.build(
            request.platform,
            request.profile,
            identity.legacy,
            request.team_id,
            descriptor.path.parent
        )

    def _stream(self, outcome: DeploymentOutcome) -> None:
        relay = outcome.relay
        if relay is None or relay.degraded:
            self.log.info("Launch completed (no log relay).")
            return

        self.log.info(f"Streaming device logs from port {relay.port} (Ctrl-C to stop)...")
        try:
            code = self.listener.wait()
        except KeyboardInterrupt:
            self.log.info("\nStopping log relay...")
            return
        logger.debug("log relay exited with %s", code)

    def _fail(self, outcome: DeploymentOutcome, error: DeploymentError) -> DeploymentOutcome:
        failed_stage = self.state
        self._transition(PipelineState.FAILED)

        outcome.state = PipelineState.FAILED
        outcome.failed_stage = failed_stage
        outcome.reason = type(error).__name__
        outcome.exit_code = EXIT_FAILURE

        outcome.message = str(error)
        if isinstance(error, DeviceLocked) and error.output:
            # Raw devicectl output first, remediation last
            self.log.info(error.output.strip())

        self.log.error(f"[{failed_stage.value}] {outcome.message}")
        return outcome

    def run(self, request: DeploymentRequest) -> DeploymentOutcome:
        """
        Execute one deployment attempt.

        Returns:
            DeploymentOutcome in TERMINATED (exit 0) or FAILED (exit 1) state

        Raises:
            KeyboardInterrupt: Interrupted before streaming began; the
                listener is already stopped when this propagates
            Exception: Unexpected defects propagate after the same cleanup
        """
        outcome = DeploymentOutcome(state=PipelineState.IDLE)
        error: Optional[DeploymentError] = None

        with self._relay_scope():
            try:
                self._transition(PipelineState.SELECTING)
                outcome.device = self._select(request)

                if request.log_relay:
                    outcome.relay = self.listener.start(request.log_port)

                self._transition(PipelineState.BUILDING)
                outcome.artifact = self._build(request, outcome.device)

                control = self.control_factory(request.platform)

                self._transition(PipelineState.INSTALLING)
                self.log.info("Installing app...")
                control.install(outcome.device.core, outcome.artifact)

                self._transition(PipelineState.LAUNCHING)
                self.log.info("Launching app...")
                control.launch(outcome.device.core, self.config.bundle_id, terminate_existing=True)

                self._transition(PipelineState.STREAMING)
                self._stream(outcome)
            except DeploymentError as e:
                error = e
            except KeyboardInterrupt:
                outcome.failed_stage = self.state
                self._transition(PipelineState.FAILED)
                outcome.state = PipelineState.FAILED
                outcome.reason = "Interrupted"
                raise

        outcome.history = self.history
        if error is not None:
            return self._fail(outcome, error)

        self._transition(PipelineState.TERMINATED)
        outcome.state = PipelineState.TERMINATED
        outcome.exit_code = 0
        return outcome
