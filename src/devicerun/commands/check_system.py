"""Preflight check of the host toolchain for device deployment

Verifies that everything `devicerun run` shells out to is installed, and
that the log relay port is free.
"""
from typing import List, Tuple

from devicerun.core import (
    EnvironmentProvider,
    Logger,
    NetworkProvider,
    ProcessExecutor,
    ToolLocator,
)
from devicerun.deploy.base import DEVICE_ARM64
from devicerun.utils.config import DEFAULT_LOG_PORT

# (tool, critical, install hint)
REQUIRED_TOOLS = (
    ('xcrun', True, 'xcode-select --install'),
    ('xcodebuild', True, 'install Xcode from the App Store'),
    ('cargo', True, 'https://rustup.rs'),
    ('lipo', False, 'xcode-select --install (needed for universal simulator builds)'),
    ('rustup', False, 'https://rustup.rs (needed to add iOS targets automatically)'),
    ('xcodegen', False, 'brew install xcodegen (needed when the project has a project.yml)'),
)

# Tools reached through xcrun rather than PATH
XCRUN_TOOLS = (
    ('devicectl', True, 'Xcode 15 or newer'),
    ('simctl', False, 'Xcode with the iOS simulator runtime'),
)


class SystemCheck:
    """Represents a single system configuration check"""
    def __init__(self, name: str, status: str, message: str, critical: bool = False):
        self.name = name
        self.status = status  # 'pass', 'warn', 'fail'
        self.message = message
        self.critical = critical


class SystemChecker:
    """Deployment preflight checker with dependency injection.

    All external dependencies are injected for testability.
    """

    def __init__(
        self,
        process_executor: ProcessExecutor,
        env_provider: EnvironmentProvider,
        tool_locator: ToolLocator,
        network: NetworkProvider,
        logger: Logger,
        log_port: int = DEFAULT_LOG_PORT
    ):
        """Initialize with injected dependencies.

        Args:
            process_executor: Subprocess execution abstraction
            env_provider: Platform/environment detection
            tool_locator: External tool discovery
            network: Socket abstraction (port availability check)
            logger: Logging abstraction
            log_port: Log relay port to check
        """
        self.process = process_executor
        self.env = env_provider
        self.tools = tool_locator
        self.network = network
        self.log = logger
        self.log_port = log_port

    def check_platform(self) -> SystemCheck:
        """iOS deployment needs a macOS host"""
        system = self.env.get_system_type()
        if system == 'Darwin':
            return SystemCheck('Host', 'pass', f'macOS ({self.env.get_machine_arch()})')
        return SystemCheck(
            'Host',
            'fail',
            f'{system} (Xcode tooling requires macOS)',
            critical=True
        )

    def check_tool(self, tool: str, critical: bool, hint: str) -> SystemCheck:
        """Check that a tool is on PATH"""
        path = self.tools.find_tool(tool)
        if path:
            return SystemCheck(tool, 'pass', path)
        return SystemCheck(
            tool,
            'fail' if critical else 'warn',
            f'not found ({hint})',
            critical=critical
        )

    def check_xcrun_tool(self, tool: str, critical: bool, hint: str) -> SystemCheck:
        """Check that xcrun can find a developer tool"""
        if not self.tools.has_tool('xcrun'):
            return SystemCheck(tool, 'fail' if critical else 'warn', 'xcrun not available', critical=critical)

        result = self.process.run(['xcrun', '--find', tool], timeout=10)
        if result.returncode == 0 and result.stdout.strip():
            return SystemCheck(tool, 'pass', result.stdout.strip())
        return SystemCheck(
            tool,
            'fail' if critical else 'warn',
            f'xcrun cannot find it ({hint})',
            critical=critical
        )

    def check_rust_target(self) -> SystemCheck:
        """Check the device target triple is installed"""
        triple = DEVICE_ARM64.triple
        if not self.tools.has_tool('rustup'):
            return SystemCheck('Rust target', 'warn', f'rustup not found, cannot verify {triple}')

        result = self.process.run(['rustup', 'target', 'list', '--installed'], timeout=10)
        if result.returncode != 0:
            return SystemCheck('Rust target', 'warn', f'Unable to check: {result.output.strip()}')
        if triple in result.stdout.split():
            return SystemCheck('Rust target', 'pass', f'{triple} installed')
        return SystemCheck('Rust target', 'warn', f'{triple} not installed (added on first build)')

    def check_log_port(self) -> SystemCheck:
        """Check the log relay port can be bound"""
        try:
            sock = self.network.bind_listener(self.log_port)
        except OSError as e:
            return SystemCheck(
                'Log relay port',
                'warn',
                f'{self.log_port} unavailable ({e}); deployments will run without log relay'
            )
        sock.close()
        return SystemCheck('Log relay port', 'pass', f'{self.log_port} free')

    def run_all_checks(self) -> Tuple[List[SystemCheck], bool]:
        """Run all preflight checks.

        Returns:
            Tuple of (list of checks, all_pass boolean)
        """
        checks = [self.check_platform()]
        checks += [self.check_tool(*spec) for spec in REQUIRED_TOOLS]
        checks += [self.check_xcrun_tool(*spec) for spec in XCRUN_TOOLS]
        checks.append(self.check_rust_target())
        checks.append(self.check_log_port())

        # Determine if all critical checks passed
        all_pass = all(
            check.status != 'fail' and not (check.critical and check.status == 'warn')
            for check in checks
        )

        return checks, all_pass

    def print_results(self, checks: List[SystemCheck]) -> None:
        """Print check results in a formatted table using logger."""
        self.log.info("=" * 80)
        self.log.info("DEPLOYMENT PREFLIGHT CHECK")
        self.log.info("=" * 80)
        self.log.info("")

        # Status symbols
        symbols = {
            'pass': '✓',
            'warn': '⚠',
            'fail': '✗'
        }

        for check in checks:
            symbol = symbols.get(check.status, '?')
            critical_marker = ' [CRITICAL]' if check.critical else ''
            self.log.info(f"{symbol} {check.name}: {check.message}{critical_marker}")

        self.log.info("")
        self.log.info("=" * 80)

        # Summary
        pass_count = sum(1 for c in checks if c.status == 'pass')
        warn_count = sum(1 for c in checks if c.status == 'warn')
        fail_count = sum(1 for c in checks if c.status == 'fail')

        self.log.info(f"Summary: {pass_count} passed, {warn_count} warnings, {fail_count} failed")

        critical_issues = [c for c in checks if c.critical and c.status in ['warn', 'fail']]
        if critical_issues:
            self.log.info("")
            self.log.info("Critical Issues:")
            for issue in critical_issues:
                self.log.info(f"  - {issue.name}: {issue.message}")
            self.log.info("")
            self.log.info("Recommendation: Fix critical issues before deploying")

        self.log.info("=" * 80)


def setup_parser(parser):
    """Setup argument parser for check command"""
    parser.add_argument(
        '--port',
        type=int,
        default=DEFAULT_LOG_PORT,
        help=f'Log relay port to check (default: {DEFAULT_LOG_PORT})'
    )


def execute(args):
    """Execute preflight check.

    Returns:
        Exit code: 0 if all checks passed, 1 if critical failures detected
    """
    from devicerun.core import (
        SubprocessExecutor,
        SystemEnvironmentProvider,
        SystemToolLocator,
        SocketNetworkProvider,
        ConsoleLogger
    )

    executor = SubprocessExecutor()
    checker = SystemChecker(
        process_executor=executor,
        env_provider=SystemEnvironmentProvider(),
        tool_locator=SystemToolLocator(),
        network=SocketNetworkProvider(executor),
        logger=ConsoleLogger(verbose=args.verbose),
        log_port=args.port
    )

    checks, all_pass = checker.run_all_checks()
    checker.print_results(checks)

    return 0 if all_pass else 1
