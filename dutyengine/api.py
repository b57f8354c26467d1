import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import uvicorn
from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel

from dutyengine import config
from dutyengine.accounts import notify_account_created
from dutyengine.database import InMemoryDocumentStore, StoreError
from dutyengine.notifier import SmtpMailer, resolve_mailer
from dutyengine.triggers import (
    ACCOUNT_CREATED_TIMEOUT_SECONDS,
    SCHEDULED_TASKS,
    ScheduledTask,
)

logger = logging.getLogger(__name__)

router = APIRouter()

NowFn = Callable[[], datetime]
MailerResolver = Callable[[], SmtpMailer | None]


class AccountCreatedEvent(BaseModel):
    data: dict[str, Any] | None = None


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/tasks")
async def list_tasks(request: Request) -> list[dict]:
    return [
        {
            "name": task.name,
            "schedule": task.schedule,
            "time_zone": task.time_zone,
            "timeout_seconds": task.timeout_seconds,
        }
        for task in request.app.state.tasks.values()
    ]


@router.post("/tasks/{name}")
async def run_task(name: str, request: Request) -> dict:
    task: ScheduledTask | None = request.app.state.tasks.get(name)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")

    db: InMemoryDocumentStore = request.app.state.database
    now = request.app.state.now_fn()
    try:
        result = await asyncio.wait_for(
            task.handler(db, now, task.time_zone),
            timeout=task.timeout_seconds,
        )
    except TimeoutError:
        logger.error("Task %s timed out after %ss", name, task.timeout_seconds)
        raise HTTPException(status_code=504, detail=f"Task {name} timed out")
    except StoreError as exc:
        logger.exception("Task %s failed", name)
        raise HTTPException(
            status_code=500, detail=f"Task {name} failed: {exc}"
        )

    return {"task": name, "ran_at": now.isoformat(), "result": result}


@router.post("/events/accounts/{account_id}/created")
async def account_created(
    account_id: str, event: AccountCreatedEvent, request: Request
) -> dict:
    # the account already exists; the email goes out in the background
    task = asyncio.create_task(
        asyncio.wait_for(
            notify_account_created(
                account_id,
                event.data,
                mailer_resolver=request.app.state.mailer_resolver,
            ),
            timeout=ACCOUNT_CREATED_TIMEOUT_SECONDS,
        )
    )
    request.app.state.notification_tasks.add(task)

    def _cleanup(t: asyncio.Task) -> None:
        request.app.state.notification_tasks.discard(t)
        if not t.cancelled() and t.exception() is not None:
            logger.error(
                "Account notification did not complete",
                extra={"account_id": account_id, "error": repr(t.exception())},
            )

    task.add_done_callback(_cleanup)

    return {"account_id": account_id, "status": "accepted"}


def create_app(
    store: InMemoryDocumentStore | None = None,
    *,
    time_zone: str | None = None,
    now_fn: NowFn | None = None,
    mailer_resolver: MailerResolver = resolve_mailer,
    tasks: Iterable[ScheduledTask] = SCHEDULED_TASKS,
) -> FastAPI:
    config.configure_logging()

    if time_zone is not None:
        tasks = [dataclasses.replace(t, time_zone=time_zone) for t in tasks]

    app = FastAPI(title="Guard Duty Engine")
    app.state.database = (
        store if store is not None else InMemoryDocumentStore()
    )
    app.state.now_fn = now_fn or (lambda: datetime.now(UTC))
    app.state.mailer_resolver = mailer_resolver
    app.state.tasks = {task.name: task for task in tasks}
    app.state.notification_tasks = set()

    app.include_router(router)
    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
