"""Build the app's native library (no install, no launch)"""
import os

from devicerun.core import (
    ConsoleLogger,
    RealFileSystemService,
    SocketNetworkProvider,
    SubprocessExecutor,
    SystemEnvironmentProvider,
    SystemToolLocator,
    YamlConfigLoader,
)
from devicerun.deploy.base import Platform, Profile
from devicerun.deploy.exceptions import BuildFailure
from devicerun.utils.build_helper import ArtifactBuilder, build_targets_for, xcode_build_settings
from devicerun.utils.config import load_config


def setup_parser(parser):
    """Setup argument parser for build command"""
    parser.add_argument(
        '--simulator',
        action='store_true',
        help='Build for the iOS simulator instead of a device'
    )
    parser.add_argument(
        '--release',
        action='store_true',
        help='Release profile (default: debug)'
    )
    parser.add_argument(
        '--output',
        help='Directory receiving the library (default: <artifact_dir>/<profile>-<sdk>)'
    )
    parser.add_argument(
        '--from-xcode',
        action='store_true',
        help='Take platform, profile and output dir from an Xcode build phase environment'
    )
    parser.add_argument(
        '--log-port',
        type=int,
        help='Log relay port to embed (default: from config, 9632)'
    )
    parser.add_argument(
        '--no-log-relay',
        action='store_true',
        help='Build without an embedded log relay address'
    )


def execute(args):
    """Execute build command"""
    logger = ConsoleLogger(verbose=args.verbose)
    filesystem = RealFileSystemService()
    env_provider = SystemEnvironmentProvider()
    executor = SubprocessExecutor()

    try:
        config = load_config(YamlConfigLoader(filesystem), args.config, env=os.environ)
        if args.from_xcode:
            platform, profile, output_dir = xcode_build_settings(env_provider.get_environ())
        else:
            platform = Platform.SIMULATOR if args.simulator else Platform.DEVICE
            profile = Profile.RELEASE if args.release else Profile.DEBUG
            output_dir = args.output or config.artifact_dir / f"{profile.value}-{platform.sdk}"
    except ValueError as e:
        logger.error(str(e))
        return 1

    builder = ArtifactBuilder(
        config=config,
        filesystem=filesystem,
        process_executor=executor,
        env_provider=env_provider,
        tool_locator=SystemToolLocator(),
        network=SocketNetworkProvider(executor),
        logger=logger
    )

    targets = build_targets_for(platform, env_provider.get_machine_arch(), config.universal_simulator)
    relay_port = None if args.no_log_relay else (args.log_port or config.log_port)

    try:
        builder.build(
            targets,
            profile,
            output_dir,
            relay_port=relay_port,
            relay_address=config.relay_address
        )
    except BuildFailure as e:
        logger.error(str(e))
        return 1

    return 0
