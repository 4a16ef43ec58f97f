"""List physical devices known to the device management layer"""
from devicerun.core import (
    ConsoleLogger,
    RealFileSystemService,
    SubprocessExecutor,
    SystemToolLocator,
)
from devicerun.deploy.catalog import DeviceCatalog
from devicerun.deploy.exceptions import ToolchainUnavailable
from devicerun.deploy.selector import select_record


def setup_parser(parser):
    """Setup argument parser for devices command"""
    parser.add_argument(
        '--platform',
        default='iOS',
        help='Device platform to list (default: iOS)'
    )


def format_device_table(records, selected=None):
    """Rows for the device listing; the device `run` would pick is starred."""
    lines = [f"  {'NAME':<24} {'DEVICECTL ID':<38} {'XCODEBUILD ID':<26} {'OS':<8} STATE"]
    for record in records:
        marker = '*' if record is selected else ' '
        lines.append(
            f"{marker} {record.display_name[:24]:<24} {record.core_identity:<38} "
            f"{record.legacy_identity:<26} {record.os_version:<8} {record.reachability.value}"
        )
    return lines


def execute(args):
    """List devices; exit 1 when none are found"""
    logger = ConsoleLogger(verbose=args.verbose)
    catalog = DeviceCatalog(
        process_executor=SubprocessExecutor(),
        filesystem=RealFileSystemService(),
        tool_locator=SystemToolLocator()
    )

    try:
        records = catalog.list_physical_devices(args.platform)
    except ToolchainUnavailable as e:
        logger.error(str(e))
        return 1

    logger.info(f"Physical {args.platform} devices (devicectl):")
    if not records:
        logger.info("  (none found)")
        return 1

    for line in format_device_table(records, select_record(records)):
        logger.info(line)
    logger.info("")
    logger.info("  (* = device `devicerun run` would deploy to)")
    return 0
