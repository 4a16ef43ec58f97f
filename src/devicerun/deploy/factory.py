"""
DeviceControlFactory - route a platform or device string to its control layer.

Format-based routing for the ``devicerun run [DEVICE]`` argument:
    (none)                 → catalog selection (device) / "booted" (simulator)
    <identifier>           → explicit device, used for both identity namespaces
    sim:<udid>             → simulator with that UDID
    sim: / simulator       → booted simulator
"""

from typing import Optional, Tuple

from devicerun.core.protocols import ProcessExecutor
from .base import Platform
from .control import DeviceControl, DeviceCtlControl, SimctlControl

BOOTED_SIMULATOR = "booted"


class DeviceControlFactory:
    """Factory for parsing device strings into control layers."""

    @staticmethod
    def for_platform(platform: Platform, process_executor: ProcessExecutor) -> DeviceControl:
        """Control layer for a destination platform."""
        if platform is Platform.SIMULATOR:
            return SimctlControl(process_executor)
        return DeviceCtlControl(process_executor)

    @staticmethod
    def parse_device_string(
        device: Optional[str],
        simulator: bool = False
    ) -> Tuple[Platform, Optional[str]]:
        """
        Parse the operator's device argument.

        Args:
            device: Device string from the command line (or None)
            simulator: --simulator flag

        Returns:
            (platform, override) where override is None when the catalog
            should pick the device

        Raises:
            ValueError: Identifier contains whitespace (not a device id)

        Examples:
            parse_device_string(None)                → (DEVICE, None)
            parse_device_string("00008110-001A")     → (DEVICE, "00008110-001A")
            parse_device_string(None, simulator=True)→ (SIMULATOR, None)
            parse_device_string("sim:5F3C-...")      → (SIMULATOR, "5F3C-...")
        """
        if device is not None:
            device = device.strip()

        if not device:
            return (Platform.SIMULATOR if simulator else Platform.DEVICE), None

        if device == "simulator":
            return Platform.SIMULATOR, None

        if device.startswith("sim:"):
            udid = device[len("sim:"):].strip()
            return Platform.SIMULATOR, (udid or None)

        if any(c.isspace() for c in device):
            raise ValueError(
                f"Unknown device format: {device!r}\n"
                f"Expected: <device identifier> | sim:<udid> | simulator"
            )

        return (Platform.SIMULATOR if simulator else Platform.DEVICE), device
