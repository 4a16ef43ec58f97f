"""Build the app's native static library for one or more iOS targets.

The library is compiled with cargo once per target triple. A device build is
a single arm64 library; a simulator build on an Intel host needs arm64 and
x86_64 merged into one fat library with lipo.
"""
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Tuple

from devicerun.core.protocols import (
    EnvironmentProvider,
    FileSystemService,
    Logger,
    NetworkProvider,
    ProcessExecutor,
    ToolLocator,
)
from devicerun.deploy.base import (
    ArtifactDescriptor,
    BuildTarget,
    Platform,
    Profile,
    DEVICE_ARM64,
    SIMULATOR_ARM64,
    SIMULATOR_X86_64,
)
from devicerun.deploy.exceptions import ArtifactMissing, CompileError, ToolchainUnavailable
from devicerun.utils.config import DeployConfig
from devicerun.utils.network import resolve_relay_address

# Characters of compiler output kept in error messages
OUTPUT_TAIL = 2000


def build_targets_for(
    platform: Platform,
    host_arch: str,
    universal_simulator: bool = False
) -> Tuple[BuildTarget, ...]:
    """
    Targets needed for a destination.

    Args:
        platform: DEVICE or SIMULATOR
        host_arch: Host CPU architecture (platform.machine())
        universal_simulator: Always build both simulator architectures

    Returns:
        Device: (arm64,). Simulator on an arm64 host: (arm64,) unless
        universal_simulator. Simulator elsewhere: (arm64, x86_64).
    """
    if platform is Platform.DEVICE:
        return (DEVICE_ARM64,)
    if host_arch in ('arm64', 'aarch64') and not universal_simulator:
        return (SIMULATOR_ARM64,)
    return (SIMULATOR_ARM64, SIMULATOR_X86_64)


def xcode_build_settings(environ: Mapping[str, str]) -> Tuple[Platform, Profile, Path]:
    """
    Read the build request from an Xcode "Run Script" build phase environment.

    Returns:
        (platform, profile, output_dir) from PLATFORM_NAME, CONFIGURATION and
        BUILT_PRODUCTS_DIR

    Raises:
        ValueError: Unsupported PLATFORM_NAME or BUILT_PRODUCTS_DIR unset
    """
    platform_name = environ.get('PLATFORM_NAME', '')
    if platform_name == 'iphoneos':
        platform = Platform.DEVICE
    elif platform_name == 'iphonesimulator':
        platform = Platform.SIMULATOR
    else:
        raise ValueError(f"Unsupported PLATFORM_NAME={platform_name or 'unknown'}")

    profile = Profile.RELEASE if environ.get('CONFIGURATION', 'Debug') == 'Release' else Profile.DEBUG

    built_products = environ.get('BUILT_PRODUCTS_DIR')
    if not built_products:
        raise ValueError("BUILT_PRODUCTS_DIR is not set (run from an Xcode build phase)")

    return platform, profile, Path(built_products)


def tail_output(output: str) -> str:
    """Last OUTPUT_TAIL characters of tool output, marked when cut."""
    output = output.strip()
    if len(output) > OUTPUT_TAIL:
        return "..." + output[-OUTPUT_TAIL:]
    return output


class ArtifactBuilder:
    """Compiles and assembles the native library with injected dependencies.

    Args:
        config: Resolved deployment configuration
        filesystem: Filesystem operations abstraction
        process_executor: Subprocess execution abstraction
        env_provider: Environment access abstraction
        tool_locator: External tool discovery abstraction
        network: Network provider used to find the relay address
        logger: Logging abstraction
    """

    def __init__(
        self,
        config: DeployConfig,
        filesystem: FileSystemService,
        process_executor: ProcessExecutor,
        env_provider: EnvironmentProvider,
        tool_locator: ToolLocator,
        network: NetworkProvider,
        logger: Logger
    ):
        self.config = config
        self.fs = filesystem
        self.process = process_executor
        self.env = env_provider
        self.tools = tool_locator
        self.network = network
        self.log = logger

    def library_path(self, target: BuildTarget, profile: Profile) -> Path:
        """Where cargo leaves the library for a target."""
        return (self.config.workspace_root / 'target' / target.triple
                / profile.value / self.config.library_name)

    def compile_env(self, relay_port: Optional[int], relay_address: Optional[str] = None) -> Dict[str, str]:
        """
        Environment for cargo, with the log relay address embedded.

        An explicit address wins, then one already present in the environment,
        then auto-detection. If nothing is found the variable is left
        unset and the app builds without log relay.
        """
        env = self.env.get_environ()
        var = self.config.relay_env_var

        if relay_port is None:
            env.pop(var, None)
            self.log.info("Log relay: disabled")
            return env

        address = relay_address or env.get(var) or resolve_relay_address(self.network, relay_port)
        if address:
            env[var] = address
            self.log.info(f"Log relay target: {address}")
        else:
            self.log.info("Log relay: disabled (no local network IP detected)")
        return env

    def _ensure_target(self, target: BuildTarget) -> None:
        """Install the rust target triple if rustup manages this toolchain."""
        if not self.tools.has_tool('rustup'):
            self.log.debug(f"rustup not found, assuming {target.triple} is installed")
            return

        result = self.process.run(['rustup', 'target', 'add', target.triple])
        if result.returncode != 0:
            raise ToolchainUnavailable(
                f"Could not install Rust target {target.triple}:\n{tail_output(result.output)}",
                output=result.output
            )

    def compile_target(self, target: BuildTarget, profile: Profile, env: Dict[str, str]) -> Path:
        """
        Compile the library for one target.

        Returns:
            Path to the non-empty library cargo produced

        Raises:
            ToolchainUnavailable: cargo missing or target not installable
            CompileError: cargo exited non-zero
            ArtifactMissing: cargo succeeded but the library is missing or empty
        """
        if not self.tools.has_tool('cargo'):
            raise ToolchainUnavailable(
                "cargo is required. Install Rust with: "
                "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh"
            )

        self._ensure_target(target)

        self.log.info(f"  Building {target.triple} ({profile.value})...")
        cmd = ['cargo', 'build', '-p', self.config.crate, '--target', target.triple]
        if profile is Profile.RELEASE:
            cmd.append('--release')

        result = self.process.run(cmd, cwd=str(self.config.workspace_root), env=env)
        if result.returncode != 0:
            raise CompileError(
                f"cargo build failed for {target.triple} (exit code {result.returncode})\n\n"
                f"Last lines of build output:\n{tail_output(result.output)}",
                output=result.output
            )

        lib = self.library_path(target, profile)
        self._check_artifact(lib, f"Missing Rust static library: {lib}")
        self.log.info(f"  ✓ {target.triple}")
        return lib

    def _check_artifact(self, path: Path, message: str) -> None:
        if not self.fs.is_file(path) or self.fs.file_size(path) == 0:
            raise ArtifactMissing(message)

    def merge(self, inputs: Iterable[Path], output: Path) -> None:
        """
        Merge single-architecture libraries into one fat library.

        Raises:
            ToolchainUnavailable: lipo not installed
            CompileError: lipo exited non-zero
            ArtifactMissing: lipo succeeded but wrote nothing
        """
        if not self.tools.has_tool('lipo'):
            raise ToolchainUnavailable("lipo is required (install Xcode command line tools)")

        cmd = ['lipo', '-create', '-output', str(output)] + [str(p) for p in inputs]
        result = self.process.run(cmd)
        if result.returncode != 0:
            raise CompileError(
                f"lipo merge failed (exit code {result.returncode}):\n{tail_output(result.output)}",
                output=result.output
            )
        self._check_artifact(output, f"lipo reported success but {output} is missing or empty")

    def build(
        self,
        targets: Iterable[BuildTarget],
        profile: Profile,
        output_dir: Path,
        relay_port: Optional[int] = None,
        relay_address: Optional[str] = None
    ) -> ArtifactDescriptor:
        """
        Build every target and assemble one library in output_dir.

        Args:
            targets: Targets to compile (one per architecture)
            profile: DEBUG or RELEASE
            output_dir: Directory receiving lib<crate>.a
            relay_port: Log relay port to embed; None builds without relay
            relay_address: Explicit relay host:port

        Returns:
            ArtifactDescriptor for the single or merged library

        Raises:
            BuildFailure: Any compile, merge or missing-output failure. No
                partial artifact is produced.
        """
        targets = tuple(targets)
        if not targets:
            raise ValueError("No build targets given")

        env = self.compile_env(relay_port, relay_address)

        triples = ', '.join(t.triple for t in targets)
        self.log.info(f"Building {self.config.crate} for {triples}...")

        # Compile everything before touching the output
        libs = [self.compile_target(t, profile, env) for t in targets]

        self.fs.mkdir(output_dir, parents=True, exist_ok=True)
        output = Path(output_dir) / self.config.library_name

        if len(libs) == 1:
            self.fs.copy_file(libs[0], output)
            self._check_artifact(output, f"Copy of {libs[0]} to {output} is missing or empty")
        else:
            self.log.info(f"  Merging {len(libs)} architectures with lipo...")
            self.merge(libs, output)

        descriptor = ArtifactDescriptor(path=output, profile=profile, targets=targets)
        self.log.info(f"✓ Library ready: {output} ({', '.join(descriptor.architectures)})")
        return descriptor
