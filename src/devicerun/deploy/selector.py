"""Pick exactly one target device from the catalog (or an explicit override)."""

from typing import Optional, Sequence

from .base import DeviceIdentity, DeviceRecord, Reachability
from .exceptions import NoDeviceFound

# Selection priority, most preferred first
TIER_ORDER = (
    Reachability.ACTIVE,
    Reachability.RECENTLY_DISCONNECTED,
    Reachability.OFFLINE_KNOWN,
)


def select_record(candidates: Sequence[DeviceRecord]) -> Optional[DeviceRecord]:
    """First candidate of the best populated tier, keeping catalog order."""
    for tier in TIER_ORDER:
        for record in candidates:
            if record.reachability is tier:
                return record
    return None


def select_device(
    candidates: Sequence[DeviceRecord],
    override: Optional[str] = None
) -> DeviceIdentity:
    """
    Resolve the identity pair for one deployment.

    Args:
        candidates: Catalog output, in catalog order
        override: Explicit device identifier; used verbatim for both
            namespaces and the candidates are ignored

    Raises:
        NoDeviceFound: No override and no candidates
    """
    if override:
        return DeviceIdentity.from_override(override)

    record = select_record(candidates)
    if record is None:
        raise NoDeviceFound(
            "No physical iOS device found.\n"
            "Connect and pair a device (USB once, then Wi-Fi works), "
            "or pass a device identifier explicitly."
        )
    return DeviceIdentity(
        core=record.core_identity,
        legacy=record.legacy_identity,
        display_name=record.display_name,
    )
