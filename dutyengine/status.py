"""
Duty status reconciliation.

Every run derives the full guard -> status mapping from the roster and today's
schedules and writes all of it back, so a crashed or skipped run heals on the
next tick.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from dutyengine import config
from dutyengine.clock import date_key, local_now, minutes_of_day
from dutyengine.database import (
    ACCOUNTS,
    SCHEDULES,
    SERVER_TIMESTAMP,
    InMemoryDocumentStore,
)
from dutyengine.models import (
    SECURITY_ROLE,
    ComputedStatus,
    DutyStatus,
    GuardAccount,
    Schedule,
    ScheduleType,
    parse_documents,
)
from dutyengine.timewindow import TimeWindow

logger = logging.getLogger(__name__)


def compute_guard_statuses(
    guards: Iterable[GuardAccount],
    schedules: Iterable[Schedule],
    now_minutes: int,
) -> dict[str, ComputedStatus]:
    statuses = {
        guard.guard_id: ComputedStatus()
        for guard in guards
        if guard.guard_id
    }

    for schedule in schedules:
        window = TimeWindow.parse(schedule.start_time, schedule.end_time)
        if window is None or not schedule.guard_id:
            continue
        if window.covers(now_minutes):
            # overlapping schedules: whichever is iterated last wins
            statuses[schedule.guard_id] = ComputedStatus(
                status=DutyStatus.ON_DUTY,
                schedule_type=(
                    schedule.schedule_type or ScheduleType.DAILY.value
                ),
            )

    return statuses


async def reconcile_duty_statuses(
    store: InMemoryDocumentStore,
    *,
    now: datetime,
    tz: str = config.TIMEZONE,
) -> dict[str, int]:
    local = local_now(now, tz)
    today = date_key(local.date())

    account_snaps = await store.where(ACCOUNTS, role=SECURITY_ROLE)
    schedule_snaps = await store.where(SCHEDULES, date=today)

    guards = parse_documents(GuardAccount, account_snaps)
    schedules = parse_documents(Schedule, schedule_snaps)
    statuses = compute_guard_statuses(
        guards, schedules, minutes_of_day(local)
    )

    batch = store.batch()
    for guard in guards:
        if not guard.guard_id:
            continue
        computed = statuses.get(guard.guard_id, ComputedStatus())
        batch.update(
            ACCOUNTS,
            guard.doc_id,
            {
                "status": computed.status.value,
                "last_status_update": SERVER_TIMESTAMP,
                "schedule_type": computed.schedule_type,
            },
        )
    await batch.commit()

    on_duty = sum(
        1
        for guard in guards
        if guard.guard_id
        and statuses[guard.guard_id].status == DutyStatus.ON_DUTY
    )
    logger.info(
        "Updated guard duty statuses",
        extra={"date": today, "guards": len(batch), "on_duty": on_duty},
    )
    return {"guards_updated": len(batch), "on_duty": on_duty}
