"""
Entry points the external scheduler invokes, with their cadence, time zone
and timeout.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from dutyengine import config
from dutyengine.archive import archive_ended_schedules
from dutyengine.checkpoints import reset_all_checkpoints
from dutyengine.database import InMemoryDocumentStore
from dutyengine.recurring import materialize_recurring_schedules
from dutyengine.status import reconcile_duty_statuses

TaskHandler = Callable[
    [InMemoryDocumentStore, datetime, str], Awaitable[dict[str, int]]
]

ACCOUNT_CREATED_TIMEOUT_SECONDS = 120


@dataclass(frozen=True)
class ScheduledTask:
    name: str
    schedule: str
    timeout_seconds: float
    handler: TaskHandler
    # zone the cron expression and the handler's "today" are evaluated in
    time_zone: str = config.TIMEZONE


async def _update_guard_statuses(store, now, tz):
    return await reconcile_duty_statuses(store, now=now, tz=tz)


async def _move_ended_schedules(store, now, tz):
    return await archive_ended_schedules(store, now=now, tz=tz)


async def _manage_recurring_schedules(store, now, tz):
    return await materialize_recurring_schedules(store, now=now, tz=tz)


async def _reset_checkpoint_statuses(store, now, tz):
    return await reset_all_checkpoints(store)


SCHEDULED_TASKS: tuple[ScheduledTask, ...] = (
    ScheduledTask(
        "update-guard-statuses", "every 5 minutes", 180, _update_guard_statuses
    ),
    ScheduledTask(
        "move-ended-schedules", "every 5 minutes", 180, _move_ended_schedules
    ),
    ScheduledTask(
        "manage-recurring-schedules",
        "0 0 * * *",
        300,
        _manage_recurring_schedules,
    ),
    ScheduledTask(
        "reset-checkpoint-statuses",
        "0 0 * * *",
        300,
        _reset_checkpoint_statuses,
    ),
)
