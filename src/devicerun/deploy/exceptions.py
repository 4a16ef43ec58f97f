"""
Deployment exceptions.

Custom exceptions for deployment failures with actionable error messages.
Each stage failure carries the raw diagnostic output of the external tool
that failed so the operator sees it verbatim.
"""

from typing import Optional


class DeploymentError(Exception):
    """
    Raised when deployment fails at any step.

    Attributes:
        stage: Pipeline stage name the failure belongs to
        output: Raw output of the failing external command, if any
    """
    stage = "deploy"

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output


class BuildFailure(DeploymentError):
    """Any failure while producing the library or the app bundle."""
    stage = "building"


class ToolchainUnavailable(BuildFailure):
    """
    A required tool or compile target is not installed.

    Examples:
        - cargo / lipo / xcodebuild not on PATH
        - rustup could not add the target triple
    """
    pass


class CompileError(BuildFailure):
    """The compiler, linker or lipo merge reported an error."""
    pass


class ArtifactMissing(BuildFailure):
    """A step reported success but its output file is absent or empty."""
    pass


class NoDeviceFound(DeploymentError):
    """No physical device in the catalog and no explicit device given."""
    stage = "selecting"


class InstallFailure(DeploymentError):
    """The device layer refused to install the app."""
    stage = "installing"


class LaunchFailure(DeploymentError):
    """The device layer could not launch the app."""
    stage = "launching"


class DeviceLocked(LaunchFailure):
    """Launch refused because the device is locked.

    The one failure with dedicated operator guidance.
    """
    remediation = "The device is locked. Unlock it and rerun the deployment."


class ListenerBindFailure(DeploymentError):
    """
    The log relay port could not be bound.

    Non-fatal: the listener catches it, marks its session degraded, and
    deployment proceeds without log relay.
    """
    stage = "relay"


class CleanupError(Exception):
    """
    Raised when cleanup fails catastrophically (the relay child could not be
    reaped even after SIGKILL).

    Note: stop() logs ordinary problems instead of raising.
    """
    pass
