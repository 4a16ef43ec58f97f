"""Build, install and launch the app on a device, then stream its logs.

Usage:
    devicerun run                     # best reachable physical device
    devicerun run 00008110-001A...    # explicit device (either identifier)
    devicerun run --simulator         # booted simulator
    devicerun run sim:<udid>          # specific simulator
"""
import os
import signal

from devicerun.core import (
    ConsoleLogger,
    RealFileSystemService,
    SocketNetworkProvider,
    SubprocessExecutor,
    SystemEnvironmentProvider,
    SystemToolLocator,
    YamlConfigLoader,
)
from devicerun.deploy.base import DeploymentRequest, Profile
from devicerun.deploy.catalog import DeviceCatalog
from devicerun.deploy.factory import DeviceControlFactory
from devicerun.deploy.pipeline import DeploymentPipeline
from devicerun.relay.listener import LogRelayListener
from devicerun.utils.build_helper import ArtifactBuilder
from devicerun.utils.config import load_config
from devicerun.utils.xcode import AppBundleBuilder


def setup_parser(parser):
    """Setup argument parser for run command"""
    parser.add_argument(
        'device',
        nargs='?',
        help='Device identifier, sim:<udid> or "simulator" (default: auto-select)'
    )
    parser.add_argument(
        '--simulator',
        action='store_true',
        help='Deploy to the booted simulator'
    )
    parser.add_argument(
        '--release',
        action='store_true',
        help='Release profile (default: debug)'
    )
    parser.add_argument(
        '--team',
        help='Development team for code signing (default: $DEVELOPMENT_TEAM)'
    )
    parser.add_argument(
        '--log-port',
        type=int,
        help='Log relay port (default: from config, 9632)'
    )
    parser.add_argument(
        '--no-log-relay',
        action='store_true',
        help='Do not start the log relay'
    )
    parser.add_argument(
        '--relay-address',
        help='host:port the app should stream logs to (default: auto-detect)'
    )


def build_request(args, config) -> DeploymentRequest:
    """
    Combine CLI flags with configuration.

    Raises:
        ValueError: Unparseable device argument
    """
    platform, override = DeviceControlFactory.parse_device_string(args.device, args.simulator)
    return DeploymentRequest(
        platform=platform,
        device_override=override,
        profile=Profile.RELEASE if args.release else Profile.DEBUG,
        team_id=args.team or config.team_id,
        log_port=args.log_port or config.log_port,
        log_relay=not args.no_log_relay,
        relay_address=args.relay_address or config.relay_address,
    )


def create_pipeline(config, logger) -> DeploymentPipeline:
    """Pipeline wired to the real toolchain, devices and network."""
    filesystem = RealFileSystemService()
    executor = SubprocessExecutor()
    env_provider = SystemEnvironmentProvider()
    tool_locator = SystemToolLocator()
    network = SocketNetworkProvider(executor)

    return DeploymentPipeline(
        config=config,
        catalog=DeviceCatalog(executor, filesystem, tool_locator),
        artifact_builder=ArtifactBuilder(
            config, filesystem, executor, env_provider, tool_locator, network, logger
        ),
        bundle_builder=AppBundleBuilder(config, filesystem, executor, tool_locator, logger),
        control_factory=lambda platform: DeviceControlFactory.for_platform(platform, executor),
        listener=LogRelayListener(executor, network, logger, stop_timeout=config.stop_timeout),
        env_provider=env_provider,
        logger=logger
    )


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


def execute(args):
    """Execute run command"""
    logger = ConsoleLogger(verbose=args.verbose)

    try:
        config = load_config(YamlConfigLoader(RealFileSystemService()), args.config, env=os.environ)
        request = build_request(args, config)
    except ValueError as e:
        logger.error(str(e))
        return 1

    pipeline = create_pipeline(config, logger)

    # SIGTERM takes the same cleanup path as Ctrl-C
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        outcome = pipeline.run(request)
    finally:
        signal.signal(signal.SIGTERM, previous)

    if outcome.success:
        logger.info("✓ Done")
    return outcome.exit_code
