# backend/bookflow/services/slots/schedule.py
"""
Staff schedule resolution.

Merges a staff member's weekly schedule with date-specific overrides into
the working blocks for one date.

Resolution order:
1. any OFF override on the date        -> no blocks
2. any CUSTOM_HOURS override           -> only those blocks (weekly ignored)
3. otherwise                           -> weekly blocks for the weekday + ADD_HOURS blocks

Blocks are (start_minute, end_minute) on the same local day and still have
to be intersected with tenant hours by the caller. Overnight staff shifts
are not represented: against overnight tenant hours only the same-day part
of a block counts.

When the deployment has no schedule tables the resolver answers
"unsupported", which callers must not confuse with "no availability".
"""

from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from .calculator import Window, merge_windows
from .config import BookingConfig, get_booking_config


@dataclass(frozen=True)
class StaffDaySchedule:
    supported: bool
    blocks: tuple[Window, ...] = ()
    source: str = "weekly"  # weekly | off | custom_hours | unsupported

    @classmethod
    def unsupported(cls) -> "StaffDaySchedule":
        return cls(supported=False, source="unsupported")


def weekday_index(target_date: date) -> int:
    """0 = Sunday .. 6 = Saturday (date.weekday() is 0 = Monday)."""
    return (target_date.weekday() + 1) % 7


class ScheduleResolver:
    """Resolves the effective working blocks of a staff member on a date."""

    def __init__(self, db: Session, config: BookingConfig | None = None):
        self.db = db
        self.config = config or get_booking_config()

    def resolve(
        self,
        tenant_id: int,
        staff_id: int,
        target_date: date,
        weekday: int | None = None,
    ) -> StaffDaySchedule:
        if not self.config.staff_schedules_enabled:
            return StaffDaySchedule.unsupported()

        if weekday is None:
            weekday = weekday_index(target_date)

        overrides = _get_overrides(self.db, tenant_id, staff_id, target_date)

        if any(o.type == "OFF" for o in overrides):
            return StaffDaySchedule(supported=True, blocks=(), source="off")

        custom = [_block(o) for o in overrides if o.type == "CUSTOM_HOURS"]
        custom = [b for b in custom if b]
        if custom:
            return StaffDaySchedule(
                supported=True,
                blocks=tuple(merge_windows(custom)),
                source="custom_hours",
            )

        weekly = [
            (row.start_minute, row.end_minute)
            for row in _get_weekly_blocks(self.db, tenant_id, staff_id, weekday)
        ]
        added = [_block(o) for o in overrides if o.type == "ADD_HOURS"]
        blocks = [b for b in weekly + added if b and b[0] < b[1]]

        return StaffDaySchedule(
            supported=True,
            blocks=tuple(merge_windows(blocks)),
            source="weekly",
        )


# ── Database helpers ─────────────────────────────────────────────────────


def _block(override) -> Window | None:
    if override.start_minute is None or override.end_minute is None:
        return None
    if override.end_minute <= override.start_minute:
        return None
    return override.start_minute, override.end_minute


def _get_overrides(db: Session, tenant_id: int, staff_id: int, target_date: date) -> list:
    """Get schedule overrides for staff on date."""
    from ...models.generated import StaffScheduleOverrides

    return (
        db.query(StaffScheduleOverrides)
        .filter(
            StaffScheduleOverrides.tenant_id == tenant_id,
            StaffScheduleOverrides.staff_id == staff_id,
            StaffScheduleOverrides.date == target_date,
        )
        .all()
    )


def _get_weekly_blocks(db: Session, tenant_id: int, staff_id: int, weekday: int) -> list:
    """Get weekly schedule rows for staff on weekday."""
    from ...models.generated import StaffSchedules

    return (
        db.query(StaffSchedules)
        .filter(
            StaffSchedules.tenant_id == tenant_id,
            StaffSchedules.staff_id == staff_id,
            StaffSchedules.weekday == weekday,
        )
        .order_by(StaffSchedules.start_minute.asc())
        .all()
    )
