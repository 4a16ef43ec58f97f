"""
DeviceCatalog - enumerate physical devices through ``xcrun devicectl``.

The devicectl JSON listing looks like::

    {"result": {"devices": [
        {"identifier": "6A1B...",                 <- core identity
         "deviceProperties": {"name": "iPhone", "osVersionNumber": "17.4"},
         "hardwareProperties": {"udid": "00008110-...",   <- legacy identity
                                "platform": "iOS",
                                "reality": "physical",
                                "marketingName": "iPhone 15"},
         "connectionProperties": {"tunnelState": "connected",
                                  "transportType": "localNetwork"}}]}}

The catalog never raises on bad output: anything it cannot parse counts as
"no devices".
"""

import json
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from devicerun.core.protocols import FileSystemService, ProcessExecutor, ToolLocator
from .base import DeviceRecord, Reachability
from .exceptions import ToolchainUnavailable

logger = logging.getLogger(__name__)

LIST_TIMEOUT = 30


def classify_tunnel_state(tunnel_state: Optional[str]) -> Reachability:
    """Map devicectl's tunnelState onto a selection tier."""
    state = (tunnel_state or "").lower()
    if state == "connected":
        return Reachability.ACTIVE
    if state == "disconnected":
        return Reachability.RECENTLY_DISCONNECTED
    return Reachability.OFFLINE_KNOWN


def _section(entry: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = entry.get(key)
    return value if isinstance(value, Mapping) else {}


def parse_device_record(entry: Any) -> Optional[DeviceRecord]:
    """Build a DeviceRecord from one raw listing entry, or None if unusable."""
    if not isinstance(entry, Mapping):
        return None

    hardware = _section(entry, "hardwareProperties")
    device = _section(entry, "deviceProperties")
    connection = _section(entry, "connectionProperties")

    core_identity = entry.get("identifier") or ""
    legacy_identity = hardware.get("udid") or ""
    if not isinstance(core_identity, str) or not isinstance(legacy_identity, str):
        return None
    if not core_identity or not legacy_identity:
        logger.debug(
            "Skipping device with identifier=%r udid=%r", core_identity, legacy_identity
        )
        return None

    return DeviceRecord(
        core_identity=core_identity,
        legacy_identity=legacy_identity,
        display_name=str(device.get("name") or hardware.get("marketingName") or core_identity),
        platform=str(hardware.get("platform") or ""),
        is_physical=hardware.get("reality") == "physical",
        reachability=classify_tunnel_state(connection.get("tunnelState")),
        model=str(hardware.get("marketingName") or ""),
        os_version=str(device.get("osVersionNumber") or ""),
        transport=str(connection.get("transportType") or ""),
    )


def parse_device_listing(data: Any, platform: str = "iOS") -> List[DeviceRecord]:
    """
    Extract physical devices for one platform from a devicectl listing.

    Args:
        data: Decoded JSON document (any shape is tolerated)
        platform: Required hardwareProperties.platform value

    Returns:
        Records in listing order; empty if the document is malformed
    """
    if not isinstance(data, Mapping):
        return []
    result = data.get("result")
    if not isinstance(result, Mapping):
        return []
    devices = result.get("devices")
    if not isinstance(devices, list):
        return []

    records = []
    for entry in devices:
        record = parse_device_record(entry)
        if record is None:
            continue
        if not record.is_physical or record.platform != platform:
            continue
        records.append(record)
    return records


class DeviceCatalog:
    """Queries the device management layer for physical devices."""

    def __init__(
        self,
        process_executor: ProcessExecutor,
        filesystem: FileSystemService,
        tool_locator: ToolLocator
    ):
        self.process = process_executor
        self.fs = filesystem
        self.tools = tool_locator

    def _query_devices(self) -> Optional[Dict[str, Any]]:
        """Run one devicectl listing and return the decoded JSON, or None."""
        with tempfile.TemporaryDirectory(prefix="devicerun_") as tmp:
            json_path = Path(tmp) / "devices.json"
            cmd = ["xcrun", "devicectl", "list", "devices", "--json-output", str(json_path)]
            try:
                result = self.process.run(cmd, timeout=LIST_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("devicectl list devices timed out after %ss", LIST_TIMEOUT)
                return None

            if result.returncode != 0:
                logger.warning(
                    "devicectl list devices failed (exit %s): %s",
                    result.returncode, result.output.strip()
                )
                return None

            if not self.fs.exists(json_path):
                logger.warning("devicectl produced no JSON output")
                return None

            try:
                raw = self.fs.read_file(json_path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read devicectl JSON: %s", e)
                return None

        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Could not parse devicectl JSON: %s", e)
            return None

    def list_physical_devices(self, platform: str = "iOS") -> List[DeviceRecord]:
        """
        List physical devices for a platform, in catalog order.

        Returns:
            Possibly empty list; "no devices" is not an error

        Raises:
            ToolchainUnavailable: If xcrun is not installed at all
        """
        if not self.tools.has_tool("xcrun"):
            raise ToolchainUnavailable(
                "xcrun is required (install Xcode command line tools: xcode-select --install)"
            )
        return parse_device_listing(self._query_devices(), platform)
