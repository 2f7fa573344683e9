"""
Zone status projection.

Display status is never stored: it is computed from committed state and the
viewer, so it can't drift from ownership.
"""
import enum
from typing import Optional


class ZoneStatus(str, enum.Enum):
    UNCLAIMED = "unclaimed"
    OWNED = "owned"
    ENEMY = "enemy"


def zone_status(is_claimed: bool, owner_id: Optional[str], viewer_id: Optional[str]) -> ZoneStatus:
    """
    Examples:
        zone_status(False, None, "a")  -> UNCLAIMED
        zone_status(True, "a", "a")    -> OWNED
        zone_status(True, "b", "a")    -> ENEMY
        zone_status(True, "b", None)   -> ENEMY
    """
    if not is_claimed:
        return ZoneStatus.UNCLAIMED
    if viewer_id is not None and owner_id == viewer_id:
        return ZoneStatus.OWNED
    return ZoneStatus.ENEMY


def zone_level(defense_points: int) -> int:
    """floor(defense_points / 100) + 1"""
    return defense_points // 100 + 1
