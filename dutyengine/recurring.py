"""
Materializes active weekly and monthly schedule templates into today's
``Schedules`` records.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any

from dutyengine import config
from dutyengine.clock import calendar_day, date_key, local_today, month_key
from dutyengine.database import (
    MONTHLY_SCHEDULES,
    SCHEDULES,
    SERVER_TIMESTAMP,
    WEEKLY_SCHEDULES,
    InMemoryDocumentStore,
    is_valid_document_id,
)
from dutyengine.models import (
    MonthlySchedule,
    RecurringSchedule,
    ScheduleType,
    WeeklySchedule,
    parse_documents,
)

logger = logging.getLogger(__name__)

PARENT_FIELDS = {
    ScheduleType.WEEKLY: "parent_weekly_schedule_id",
    ScheduleType.MONTHLY: "parent_monthly_schedule_id",
}


def weekly_template_covers(
    template: WeeklySchedule, today: date, tz: str = config.TIMEZONE
) -> bool:
    start = calendar_day(template.week_start_date, tz)
    return start <= today <= start + timedelta(days=6)


def monthly_template_covers(template: MonthlySchedule, today: date) -> bool:
    return template.month_year == month_key(today)


def materialized_schedule_id(
    kind: ScheduleType, template_id: str, today: date, guard_id: str
) -> str:
    return f"{kind.value}-{template_id}-{date_key(today)}-{guard_id}"


def build_daily_schedules(
    template: RecurringSchedule, kind: ScheduleType, today: date
) -> dict[str, dict[str, Any]]:
    """Return the schedule documents for ``today`` keyed by document id."""
    schedules = {}
    for guard_id in template.guard_ids:
        doc_id = materialized_schedule_id(
            kind, template.doc_id, today, guard_id
        )
        if not is_valid_document_id(doc_id):
            logger.warning(
                "Skipping guard with unusable id in %s template %s",
                kind.value,
                template.doc_id,
                extra={"guard_id": guard_id},
            )
            continue
        schedules[doc_id] = {
            "guard_id": guard_id,
            "date": date_key(today),
            "start_time": template.start_time,
            "end_time": template.end_time,
            "duty": True,
            "created_at": SERVER_TIMESTAMP,
            "checkpoints": list(template.checkpoints),
            PARENT_FIELDS[kind]: template.doc_id,
            "schedule_type": kind.value,
        }
    return schedules


async def _materialize(
    store: InMemoryDocumentStore,
    template: RecurringSchedule,
    kind: ScheduleType,
    today: date,
) -> int:
    existing = await store.where(
        SCHEDULES,
        limit=1,
        date=date_key(today),
        **{PARENT_FIELDS[kind]: template.doc_id},
    )
    if existing:
        return 0

    schedules = build_daily_schedules(template, kind, today)
    if not schedules:
        logger.info(
            "%s template %s has no guards to schedule",
            kind.value,
            template.doc_id,
        )
        return 0

    # ids are deterministic, so an overlapping run rewrites the same documents
    batch = store.batch()
    for doc_id, data in schedules.items():
        batch.set(SCHEDULES, doc_id, data)
    await batch.commit()

    logger.info(
        "Created daily schedules for %s schedule %s on %s",
        kind.value,
        template.doc_id,
        date_key(today),
        extra={"count": len(schedules)},
    )
    return len(schedules)


async def materialize_recurring_schedules(
    store: InMemoryDocumentStore,
    *,
    now: datetime,
    tz: str = config.TIMEZONE,
) -> dict[str, int]:
    today = local_today(now, tz)
    logger.info("Managing recurring schedules for %s", date_key(today))

    created = {ScheduleType.WEEKLY: 0, ScheduleType.MONTHLY: 0}
    try:
        weekly = parse_documents(
            WeeklySchedule, await store.where(WEEKLY_SCHEDULES, is_active=True)
        )
        for template in weekly:
            if weekly_template_covers(template, today, tz):
                created[ScheduleType.WEEKLY] += await _materialize(
                    store, template, ScheduleType.WEEKLY, today
                )

        monthly = parse_documents(
            MonthlySchedule,
            await store.where(MONTHLY_SCHEDULES, is_active=True),
        )
        for template in monthly:
            if monthly_template_covers(template, today):
                created[ScheduleType.MONTHLY] += await _materialize(
                    store, template, ScheduleType.MONTHLY, today
                )
    except Exception:
        logger.exception("Error managing recurring schedules")
        raise

    logger.info("Recurring schedule management completed successfully")
    return {
        "weekly_schedules_created": created[ScheduleType.WEEKLY],
        "monthly_schedules_created": created[ScheduleType.MONTHLY],
    }
