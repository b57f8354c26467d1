"""
Moves schedules whose duty window is over from ``Schedules`` to
``EndedSchedules`` and puts the checkpoints they covered back to baseline.

Today's schedules are checked for same-day windows that have closed and
yesterday's schedules for overnight windows that closed this morning. An
overnight window that started today is left for tomorrow's runs.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from dutyengine import config
from dutyengine.checkpoints import chunked, reset_checkpoints
from dutyengine.clock import (
    date_key,
    local_now,
    local_yesterday,
    minutes_of_day,
)
from dutyengine.database import (
    ENDED_SCHEDULES,
    SCHEDULES,
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    InMemoryDocumentStore,
)
from dutyengine.models import ScheduleType
from dutyengine.timewindow import TimeWindow

logger = logging.getLogger(__name__)


def _has_ended(
    snap: DocumentSnapshot, now_minutes: int, *, from_yesterday: bool
) -> bool:
    window = TimeWindow.parse(
        snap.data.get("start_time"), snap.data.get("end_time")
    )
    if window is None:
        return False
    return window.has_ended(now_minutes, anchored_yesterday=from_yesterday)


def select_ended_schedules(
    today: Iterable[DocumentSnapshot],
    yesterday: Iterable[DocumentSnapshot],
    now_minutes: int,
) -> list[DocumentSnapshot]:
    ended = [
        s for s in today if _has_ended(s, now_minutes, from_yesterday=False)
    ]
    ended.extend(
        s for s in yesterday if _has_ended(s, now_minutes, from_yesterday=True)
    )
    return ended


def build_archived_schedule(data: dict[str, Any]) -> dict[str, Any]:
    return {
        **data,
        "ended_at": SERVER_TIMESTAMP,
        "source_collection": SCHEDULES,
        "schedule_type": data.get("schedule_type") or ScheduleType.DAILY.value,
    }


async def archive_ended_schedules(
    store: InMemoryDocumentStore,
    *,
    now: datetime,
    tz: str = config.TIMEZONE,
    batch_size: int = config.ARCHIVE_BATCH_SIZE,
) -> dict[str, int]:
    local = local_now(now, tz)
    today = local.date()
    now_minutes = minutes_of_day(local)

    today_snaps, yesterday_snaps = await asyncio.gather(
        store.where(SCHEDULES, date=date_key(today)),
        store.where(SCHEDULES, date=date_key(local_yesterday(now, tz))),
    )

    to_move = select_ended_schedules(today_snaps, yesterday_snaps, now_minutes)
    if not to_move:
        logger.info("No schedules to move to Ended Schedules at this time.")
        return {"schedules_moved": 0, "checkpoints_reset": 0}

    checkpoints_reset = 0
    for chunk in chunked(to_move, batch_size):
        batch = store.batch()
        for snap in chunk:
            batch.set(
                ENDED_SCHEDULES, snap.id, build_archived_schedule(snap.data)
            )
            batch.delete(SCHEDULES, snap.id)
        await batch.commit()

        for snap in chunk:
            checkpoints = snap.data.get("checkpoints")
            if not isinstance(checkpoints, list) or not checkpoints:
                continue
            count = await reset_checkpoints(store, checkpoints)
            checkpoints_reset += count
            logger.info(
                "Reset checkpoints for ended schedule %s",
                snap.id,
                extra={"schedule_id": snap.id, "count": count},
            )

    logger.info("Moved %d schedules to 'EndedSchedules'.", len(to_move))
    return {
        "schedules_moved": len(to_move),
        "checkpoints_reset": checkpoints_reset,
    }
