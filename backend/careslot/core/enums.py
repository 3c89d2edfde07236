# backend/careslot/core/enums.py
"""
Core enums for the booking engine.

Role names arrive with the already-authenticated actor; the engine only
reads them for ownership and privilege checks.
"""

from enum import Enum


class RoleName(str, Enum):
    """Standard role names carried by an authenticated actor."""

    ADMIN = "admin"
    SUPPORT = "support"
    PROVIDER = "provider"
    CLIENT = "client"


class BookingParty(str, Enum):
    """Who performed (or failed to perform) a booking action."""

    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"
    SYSTEM = "system"


class DayOfWeek(str, Enum):
    """Keys used in a weekly availability template."""

    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"

    @classmethod
    def from_weekday(cls, weekday: int) -> "DayOfWeek":
        """Map ``date.weekday()`` (Monday=0) to a template key."""
        return _WEEKDAY_ORDER[weekday]


_WEEKDAY_ORDER = (
    DayOfWeek.MON,
    DayOfWeek.TUE,
    DayOfWeek.WED,
    DayOfWeek.THU,
    DayOfWeek.FRI,
    DayOfWeek.SAT,
    DayOfWeek.SUN,
)
