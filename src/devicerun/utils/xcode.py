"""Build the .app bundle with xcodegen + xcodebuild"""
from pathlib import Path
from typing import List, Optional

from devicerun.core.protocols import FileSystemService, Logger, ProcessExecutor, ToolLocator
from devicerun.deploy.base import Platform, Profile
from devicerun.deploy.exceptions import ArtifactMissing, CompileError, ToolchainUnavailable
from devicerun.utils.build_helper import tail_output
from devicerun.utils.config import DeployConfig

GENERIC_SIMULATOR_DESTINATION = "generic/platform=iOS Simulator"


def destination_for(platform: Platform, destination_id: Optional[str]) -> str:
    """
    xcodebuild -destination value.

    Physical devices are addressed by their legacy identity; a simulator
    without an explicit UDID builds for the generic simulator destination.
    """
    if platform is Platform.DEVICE:
        if not destination_id:
            raise ValueError("A device build needs a destination identifier")
        return f"id={destination_id}"
    if destination_id and destination_id != "booted":
        return f"id={destination_id}"
    return GENERIC_SIMULATOR_DESTINATION


class AppBundleBuilder:
    """Generates the Xcode project (if it has a spec) and builds the app."""

    def __init__(
        self,
        config: DeployConfig,
        filesystem: FileSystemService,
        process_executor: ProcessExecutor,
        tool_locator: ToolLocator,
        logger: Logger
    ):
        self.config = config
        self.fs = filesystem
        self.process = process_executor
        self.tools = tool_locator
        self.log = logger

    def derived_data_path(self, platform: Platform) -> Path:
        return self.config.derived_data / platform.value

    def app_path(self, platform: Platform, profile: Profile) -> Path:
        """Where xcodebuild leaves the bundle, e.g. .../Debug-iphoneos/App.app"""
        return (self.derived_data_path(platform) / 'Build' / 'Products'
                / f"{profile.configuration}-{platform.sdk}" / f"{self.config.app_name}.app")

    def generate_project(self) -> None:
        """Run xcodegen when the project is described by a spec file."""
        spec = self.config.xcode_spec
        if not self.fs.exists(spec):
            self.log.debug(f"No xcodegen spec at {spec}, using existing project")
            return

        if not self.tools.has_tool('xcodegen'):
            raise ToolchainUnavailable("xcodegen is required. Install with: brew install xcodegen")

        result = self.process.run(
            ['xcodegen', 'generate', '--spec', spec.name],
            cwd=str(spec.parent)
        )
        if result.returncode != 0:
            raise CompileError(
                f"xcodegen failed (exit code {result.returncode}):\n{result.output.strip()}",
                output=result.output
            )

    def xcodebuild_cmd(
        self,
        platform: Platform,
        profile: Profile,
        destination_id: Optional[str],
        team_id: Optional[str],
        library_dir: Path
    ) -> List[str]:
        cmd = [
            'xcodebuild',
            '-project', str(self.config.xcode_project),
            '-scheme', self.config.xcode_scheme,
            '-configuration', profile.configuration,
            '-destination', destination_for(platform, destination_id),
            '-derivedDataPath', str(self.derived_data_path(platform)),
        ]
        if platform is Platform.DEVICE:
            cmd.append('-allowProvisioningUpdates')
            if team_id:
                cmd.append(f"DEVELOPMENT_TEAM={team_id}")
            cmd.append('CODE_SIGN_STYLE=Automatic')
        cmd.append(f"LIBRARY_SEARCH_PATHS=$(inherited) {library_dir}")
        cmd.append('build')
        return cmd

    def build(
        self,
        platform: Platform,
        profile: Profile,
        destination_id: Optional[str],
        team_id: Optional[str],
        library_dir: Path
    ) -> Path:
        """
        Build the app bundle against a prebuilt library.

        Args:
            platform: DEVICE or SIMULATOR
            profile: DEBUG or RELEASE
            destination_id: Legacy device identity (or simulator UDID)
            team_id: Signing team (device builds only)
            library_dir: Directory holding the library from ArtifactBuilder

        Returns:
            Path to the built .app

        Raises:
            ToolchainUnavailable: xcodegen / xcodebuild missing
            CompileError: xcodegen or xcodebuild failed
            ArtifactMissing: Build succeeded but the bundle is not where expected
        """
        if not self.tools.has_tool('xcodebuild'):
            raise ToolchainUnavailable("xcodebuild is required (install Xcode)")

        self.generate_project()

        self.log.info(f"Building {self.config.app_name} ({profile.configuration}, {platform.sdk})...")
        if team_id and platform is Platform.DEVICE:
            self.log.info(f"Using development team: {team_id}")

        cmd = self.xcodebuild_cmd(platform, profile, destination_id, team_id, library_dir)
        result = self.process.run(cmd, cwd=str(self.config.workspace_root))
        if result.returncode != 0:
            raise CompileError(
                f"xcodebuild failed (exit code {result.returncode})\n\n"
                f"Last lines of build output:\n{tail_output(result.output)}",
                output=result.output
            )

        app = self.app_path(platform, profile)
        if not self.fs.is_dir(app):
            raise ArtifactMissing(f"Built app bundle not found: {app}")

        self.log.info(f"✓ App bundle: {app}")
        return app
