"""
devicerun - build, deploy and stream logs from an app on iOS devices

A command-line interface that compiles the app's native library, builds and
signs the app bundle, installs and launches it on a physical device (or a
simulator), and relays the app's logs back to the terminal.
"""
import argparse
import logging
import sys

__version__ = "0.1.0"


def create_parser():
    """Build the top-level argument parser with every subcommand."""
    from devicerun.commands import build, check_system, devices, listen, run

    parser = argparse.ArgumentParser(
        prog='devicerun',
        description='devicerun: iOS device deployment and log relay',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  devicerun devices                    # List physical devices
  devicerun run                        # Build, install, launch, stream logs
  devicerun run --simulator            # Same, on the booted simulator
  devicerun run 00008110-001A2B3C      # Explicit device
  devicerun build --release            # Build the native library only
  devicerun listen                     # Relay logs without deploying
  devicerun check                      # Verify the toolchain
        '''
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--config',
        help='Config file (default: ./devicerun.yaml if present)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show debug output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Devices command
    devices_parser = subparsers.add_parser('devices', help='List physical devices')
    devices.setup_parser(devices_parser)

    # Build command
    build_parser = subparsers.add_parser('build', help='Build the native library')
    build.setup_parser(build_parser)

    # Run command
    run_parser = subparsers.add_parser('run', help='Build, install, launch and stream logs')
    run.setup_parser(run_parser)

    # Listen command
    listen_parser = subparsers.add_parser('listen', help='Relay app logs without deploying')
    listen.setup_parser(listen_parser)

    # Check command
    check_parser = subparsers.add_parser('check', help='Check the deployment toolchain')
    check_system.setup_parser(check_parser)

    return parser


def main(argv=None):
    """Main CLI entry point"""
    from devicerun.commands import build, check_system, devices, listen, run

    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )

    handlers = {
        'devices': devices.execute,
        'build': build.execute,
        'run': run.execute,
        'listen': listen.execute,
        'check': check_system.execute,
    }

    # Dispatch to command handler
    try:
        sys.exit(handlers[args.command](args))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
