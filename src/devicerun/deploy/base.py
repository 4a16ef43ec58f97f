"""
Deployment data model.

Value types shared by the catalog, selector, builders, device control and the
pipeline. Everything here is immutable except the LogRelaySession, whose
state is advanced by the listener that owns it.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class Platform(Enum):
    """Deployment destination."""
    DEVICE = "device"
    SIMULATOR = "simulator"

    @property
    def sdk(self) -> str:
        """Xcode SDK / PLATFORM_NAME for this destination."""
        return "iphoneos" if self is Platform.DEVICE else "iphonesimulator"


class Profile(Enum):
    """Build profile."""
    DEBUG = "debug"
    RELEASE = "release"

    @property
    def configuration(self) -> str:
        """Xcode configuration name ("Debug" / "Release")."""
        return self.value.capitalize()


class Reachability(Enum):
    """
    Connection tier of a physical device, in selection priority order.

    ACTIVE: connection tunnel is up
    RECENTLY_DISCONNECTED: paired, tunnel reported as disconnected
    OFFLINE_KNOWN: any other known device (unavailable, unknown state, ...)
    """
    ACTIVE = "active"
    RECENTLY_DISCONNECTED = "recently_disconnected"
    OFFLINE_KNOWN = "offline_known"


@dataclass(frozen=True)
class DeviceRecord:
    """
    Normalized view of one physical device from the device catalog.

    Attributes:
        core_identity: Identifier understood by devicectl install/launch
        legacy_identity: Identifier understood by xcodebuild -destination
        display_name: Human-readable device name
        platform: Device platform as reported (e.g. "iOS")
        is_physical: False for virtual devices
        reachability: Connection tier used by the selector
        model: Marketing model name, if reported
        os_version: OS version string, if reported
        transport: "wired", "localNetwork", ... if reported

    Both identities denote the same device but are not interchangeable;
    neither is ever derived from the other.
    """
    core_identity: str
    legacy_identity: str
    display_name: str
    platform: str
    is_physical: bool
    reachability: Reachability
    model: str = ""
    os_version: str = ""
    transport: str = ""


@dataclass(frozen=True)
class DeviceIdentity:
    """The resolved identity pair for one deployment attempt."""
    core: str
    legacy: str
    display_name: str = ""

    @classmethod
    def from_override(cls, identifier: str) -> "DeviceIdentity":
        """An explicit identifier is trusted for both namespaces."""
        return cls(core=identifier, legacy=identifier, display_name=identifier)


@dataclass(frozen=True)
class BuildTarget:
    """One (architecture, platform-variant) pair needing a compiled library."""
    triple: str
    arch: str
    variant: Platform

    def __str__(self) -> str:
        return self.triple


DEVICE_ARM64 = BuildTarget("aarch64-apple-ios", "arm64", Platform.DEVICE)
SIMULATOR_ARM64 = BuildTarget("aarch64-apple-ios-sim", "arm64", Platform.SIMULATOR)
SIMULATOR_X86_64 = BuildTarget("x86_64-apple-ios", "x86_64", Platform.SIMULATOR)


@dataclass(frozen=True)
class ArtifactDescriptor:
    """
    A built library on disk, keyed by (targets, profile).

    Only ever constructed by the builder after checking that the file exists
    and is non-empty.
    """
    path: Path
    profile: Profile
    targets: tuple

    @property
    def architectures(self) -> tuple:
        return tuple(t.arch for t in self.targets)


@dataclass(frozen=True)
class DeploymentRequest:
    """
    Parameters of one deployment attempt.

    Attributes:
        platform: DEVICE or SIMULATOR
        device_override: Explicit device identifier (skips the catalog)
        profile: DEBUG or RELEASE
        team_id: Signing team passed through to xcodebuild
        log_port: TCP port for the log relay
        log_relay: Start the relay listener at all
        relay_address: Explicit host:port to embed instead of auto-detection
    """
    platform: Platform = Platform.DEVICE
    device_override: Optional[str] = None
    profile: Profile = Profile.DEBUG
    team_id: Optional[str] = None
    log_port: int = 9632
    log_relay: bool = True
    relay_address: Optional[str] = None


class RelayState(Enum):
    STARTING = "starting"
    LISTENING = "listening"
    STREAMING = "streaming"
    TERMINATED = "terminated"


@dataclass
class LogRelaySession:
    """
    Lifecycle record of the background log relay.

    degraded is set when the port could not be bound; the session then goes
    straight to TERMINATED and the deployment runs without log relay.
    """
    port: int
    state: RelayState = RelayState.STARTING
    pid: Optional[int] = None
    degraded: bool = False
    error: Optional[str] = None


class PipelineState(Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    BUILDING = "building"
    INSTALLING = "installing"
    LAUNCHING = "launching"
    STREAMING = "streaming"
    TERMINATED = "terminated"
    FAILED = "failed"


@dataclass
class DeploymentOutcome:
    """
    Result of one pipeline run.

    Attributes:
        state: TERMINATED or FAILED
        failed_stage: Stage that failed (None on success)
        reason: Error class name, e.g. "DeviceLocked"
        message: Operator-facing message (raw tool output for most failures)
        exit_code: Process exit status for the CLI
        device: Resolved identity, if selection got that far
        artifact: Built app bundle path, if the build got that far
        relay: The log relay session for this attempt
    """
    state: PipelineState
    failed_stage: Optional[PipelineState] = None
    reason: Optional[str] = None
    message: str = ""
    exit_code: int = 0
    device: Optional[DeviceIdentity] = None
    artifact: Optional[Path] = None
    relay: Optional[LogRelaySession] = None
    history: list = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state is PipelineState.TERMINATED
