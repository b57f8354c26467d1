"""
Document models for the collections the engine reads and writes.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from dutyengine.database import DocumentSnapshot

logger = logging.getLogger(__name__)

SECURITY_ROLE = "Security"


class DutyStatus(StrEnum):
    ON_DUTY = "On Duty"
    OFF_DUTY = "Off Duty"


class ScheduleType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CheckpointStatus(StrEnum):
    NOT_YET_SCANNED = "Not Yet Scanned"
    SCANNED = "Scanned"


def _as_identifier(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


Identifier = Annotated[str | None, BeforeValidator(_as_identifier)]
CheckpointIds = Annotated[list[Any], BeforeValidator(_as_list)]


class Document(BaseModel):
    model_config = ConfigDict(extra="allow")

    doc_id: str

    @classmethod
    def from_snapshot(cls, snap: DocumentSnapshot):
        return cls.model_validate({**snap.data, "doc_id": snap.id})


class GuardAccount(Document):
    guard_id: Identifier = None
    role: str | None = None


class Schedule(Document):
    guard_id: Identifier = None
    date: str | None = None
    start_time: Any = None
    end_time: Any = None
    checkpoints: CheckpointIds = Field(default_factory=list)
    schedule_type: str | None = None


class RecurringSchedule(Document):
    is_active: bool = False
    guard_ids: list[str]
    start_time: str
    end_time: str
    checkpoints: CheckpointIds = Field(default_factory=list)

    @field_validator("guard_ids", mode="before")
    @classmethod
    def _guard_id_strings(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [gid for gid in map(_as_identifier, value) if gid]
        return value


class WeeklySchedule(RecurringSchedule):
    # an aware datetime keeps its zone so callers can take the local date
    week_start_date: datetime | date

    @field_validator("week_start_date", mode="before")
    @classmethod
    def _iso_start(cls, value: Any) -> Any:
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise ValueError(f"not a date: {value!r}")
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"not an ISO date: {value!r}") from None


class MonthlySchedule(RecurringSchedule):
    month_year: str = Field(pattern=r"^\d{4}-\d{2}$")


class Checkpoint(Document):
    status: Any = None
    lastScannedAt: Any = None
    remarks: Any = None
    lastScannedById: Any = None
    lastScannedByName: Any = None
    lastScannedBy: Any = None


class ComputedStatus(BaseModel):
    status: DutyStatus = DutyStatus.OFF_DUTY
    schedule_type: str | None = None


def parse_documents[D: Document](
    model: type[D], snaps: Iterable[DocumentSnapshot]
) -> list[D]:
    """Parse snapshots into ``model``, logging and skipping malformed ones."""
    parsed = []
    for snap in snaps:
        try:
            parsed.append(model.from_snapshot(snap))
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed %s document %s",
                snap.collection,
                snap.id,
                extra={
                    "collection": snap.collection,
                    "doc_id": snap.id,
                    "error": str(exc),
                },
            )
    return parsed
