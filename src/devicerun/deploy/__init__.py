"""
Device deployment subsystem.

Builds the app, installs and launches it on a physical iOS device (or a
simulator), and streams its logs back:
    - DeviceCatalog / select_device: find the one device to deploy to
    - DeviceCtlControl / SimctlControl: install + launch
    - deploy.pipeline.DeploymentPipeline: the whole attempt as a state machine

Public API:
    - DeploymentRequest, DeploymentOutcome and the other value types
    - DeviceCatalog, select_device
    - DeviceControl, DeviceControlFactory
    - DeploymentError and its stage subclasses, CleanupError

deploy.pipeline is not imported here: it depends on utils and relay, which
import this package.
"""

from .base import (
    ArtifactDescriptor,
    BuildTarget,
    DeploymentOutcome,
    DeploymentRequest,
    DeviceIdentity,
    DeviceRecord,
    LogRelaySession,
    PipelineState,
    Platform,
    Profile,
    Reachability,
    RelayState,
)
from .catalog import DeviceCatalog
from .control import DeviceControl, DeviceCtlControl, SimctlControl
from .exceptions import (
    ArtifactMissing,
    BuildFailure,
    CleanupError,
    CompileError,
    DeploymentError,
    DeviceLocked,
    InstallFailure,
    LaunchFailure,
    ListenerBindFailure,
    NoDeviceFound,
    ToolchainUnavailable,
)
from .factory import DeviceControlFactory
from .selector import select_device

__all__ = [
    # Types
    "ArtifactDescriptor",
    "BuildTarget",
    "DeploymentOutcome",
    "DeploymentRequest",
    "DeviceIdentity",
    "DeviceRecord",
    "LogRelaySession",
    "PipelineState",
    "Platform",
    "Profile",
    "Reachability",
    "RelayState",

    # Catalog and selection
    "DeviceCatalog",
    "select_device",

    # Control
    "DeviceControl",
    "DeviceControlFactory",
    "DeviceCtlControl",
    "SimctlControl",

    # Exceptions
    "DeploymentError",
    "BuildFailure",
    "ToolchainUnavailable",
    "CompileError",
    "ArtifactMissing",
    "NoDeviceFound",
    "InstallFailure",
    "LaunchFailure",
    "DeviceLocked",
    "ListenerBindFailure",
    "CleanupError",
]
