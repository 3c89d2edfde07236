# backend/careslot/services/slot_generation.py
"""
Pure slot materialization from a weekly availability template.

No database access here: the caller loads the configuration and its
schedule exceptions, and persists the returned specs.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
import logging
from typing import Iterable, Iterator, List, Optional, Sequence

import pytz

from ..core.enums import DayOfWeek
from ..core.timezone_utils import as_utc, local_date, local_to_utc
from ..models.booking_event import BookingEventConfiguration, ScheduleException
from ..schemas.booking_event import TimeBlock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotSpec:
    """A slot to be persisted; times are aware UTC, ``date`` is provider-local."""

    provider_event_id: str
    provider_id: str
    date: date
    start_time: datetime
    end_time: datetime
    price: Decimal
    consultation_modes: List[str] = field(default_factory=list)

    def to_row(self) -> dict:
        return {
            "provider_event_id": self.provider_event_id,
            "provider_id": self.provider_id,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "price": self.price,
            "consultation_modes": list(self.consultation_modes),
        }


def _days(first: date, last: date) -> Iterator[date]:
    current = first
    while current <= last:
        yield current
        current += timedelta(days=1)


def _block_starts(block: TimeBlock, day: date, tz_name: str) -> Iterator[tuple[datetime, datetime]]:
    """
    UTC (start, end) pairs cut from one block; a trailing partial slot is dropped.

    Starts walk in local wall-clock time so a DST change does not shift later
    slots. Starts that fall in a spring-forward gap are skipped, each end is the
    UTC start plus the slot duration, and a slot that would overlap the
    previous one is dropped.
    """
    duration = timedelta(minutes=block.slot_duration)
    step = timedelta(minutes=block.slot_duration + block.buffer_time)
    cursor = datetime.combine(day, block.start)
    block_end = datetime.combine(day, block.end)
    previous_end: Optional[datetime] = None
    while cursor + duration <= block_end:
        wall_time = cursor.time()
        cursor += step
        try:
            start = local_to_utc(day, wall_time, tz_name)
        except pytz.NonExistentTimeError:
            logger.debug("Skipping %s on %s: inside a DST gap in %s", wall_time, day, tz_name)
            continue
        if previous_end is not None and start < previous_end:
            continue
        previous_end = start + duration
        yield start, previous_end


def generate_slots(
    config: BookingEventConfiguration,
    range_start: datetime,
    range_end: datetime,
    now: datetime,
    exceptions: Optional[Sequence[ScheduleException]] = None,
) -> List[SlotSpec]:
    """
    Emit slots for every enabled weekday in ``[range_start, range_end)``.

    Slots are produced only when they start no earlier than
    ``now + min_booking_minutes`` and before ``now + max_booking_days``, fall
    on a day inside the configuration's effective range, and do not overlap a
    schedule exception. The result is sorted by start time.
    """
    now = as_utc(now)
    range_start = as_utc(range_start)
    range_end = as_utc(range_end)

    earliest = max(range_start, now + timedelta(minutes=int(config.min_booking_minutes or 0)))
    latest = min(range_end, now + timedelta(days=int(config.max_booking_days)))
    if earliest >= latest:
        return []

    tz_name = config.timezone or "UTC"
    daily_configs = config.parsed_daily_configs()
    effective_from = local_date(config.effective_from, tz_name) if config.effective_from else None
    effective_to = local_date(config.effective_to, tz_name) if config.effective_to else None
    blocked: Iterable[ScheduleException] = exceptions or []

    specs: List[SlotSpec] = []
    for day in _days(local_date(earliest, tz_name), local_date(latest, tz_name)):
        if effective_from and day < effective_from:
            continue
        if effective_to and day > effective_to:
            continue
        daily = daily_configs.get(DayOfWeek.from_weekday(day.weekday()))
        if daily is None or not daily.is_bookable:
            continue

        for block in daily.time_blocks:
            for start, end in _block_starts(block, day, tz_name):
                if start < earliest or start >= latest:
                    continue
                if any(exc.overlaps(start, end) for exc in blocked):
                    continue
                specs.append(
                    SlotSpec(
                        provider_event_id=config.id,
                        provider_id=config.provider_id,
                        date=day,
                        start_time=start,
                        end_time=end,
                        price=Decimal(str(config.price or 0)),
                        consultation_modes=config.consultation_modes,
                    )
                )

    specs.sort(key=lambda spec: spec.start_time)
    logger.debug(
        "Generated %d slots for event %s",
        len(specs),
        config.id,
        extra={"provider_event_id": config.id, "slot_count": len(specs)},
    )
    return specs
