from datetime import UTC, date, datetime

import pytest

from conftest import MANILA, manila
from dutyengine.database import StoreError
from dutyengine.models import MonthlySchedule, WeeklySchedule
from dutyengine.recurring import (
    materialize_recurring_schedules,
    monthly_template_covers,
    weekly_template_covers,
)

NOW = manila(2025, 7, 2, 0, 0)


def _weekly(**overrides) -> dict:
    return {
        "is_active": True,
        "guard_ids": ["G1", "G2"],
        "start_time": "08:00",
        "end_time": "16:00",
        "checkpoints": ["cp-1"],
        "week_start_date": "2025-06-30",
        **overrides,
    }


def _monthly(**overrides) -> dict:
    return {
        "is_active": True,
        "guard_ids": ["G3"],
        "start_time": "22:00",
        "end_time": "06:00",
        "month_year": "2025-07",
        **overrides,
    }


def _schedules_for(store, parent_field: str, parent_id: str) -> dict:
    return {
        doc_id: data
        for doc_id, data in store.documents("Schedules").items()
        if data.get(parent_field) == parent_id
    }


@pytest.mark.asyncio
async def test_weekly_template_materializes_one_schedule_per_guard(
    store, clock
) -> None:
    store.put("WeeklySchedules", "wk-1", _weekly())

    result = await materialize_recurring_schedules(store, now=NOW, tz=MANILA)

    created = _schedules_for(store, "parent_weekly_schedule_id", "wk-1")
    assert sorted(s["guard_id"] for s in created.values()) == ["G1", "G2"]
    for schedule in created.values():
        assert schedule["date"] == "2025-07-02"
        assert schedule["start_time"] == "08:00"
        assert schedule["end_time"] == "16:00"
        assert schedule["checkpoints"] == ["cp-1"]
        assert schedule["duty"] is True
        assert schedule["schedule_type"] == "weekly"
        assert schedule["created_at"] == clock.now
    assert result == {
        "weekly_schedules_created": 2,
        "monthly_schedules_created": 0,
    }


@pytest.mark.asyncio
async def test_monthly_template_materializes_for_matching_month(store) -> None:
    store.put("MonthlySchedules", "mo-1", _monthly())
    store.put("MonthlySchedules", "mo-old", _monthly(month_year="2025-06"))

    result = await materialize_recurring_schedules(store, now=NOW, tz=MANILA)

    created = _schedules_for(store, "parent_monthly_schedule_id", "mo-1")
    assert [s["guard_id"] for s in created.values()] == ["G3"]
    assert next(iter(created.values()))["checkpoints"] == []
    assert next(iter(created.values()))["schedule_type"] == "monthly"
    assert _schedules_for(store, "parent_monthly_schedule_id", "mo-old") == {}
    assert result["monthly_schedules_created"] == 1


@pytest.mark.asyncio
async def test_second_run_same_day_creates_nothing(store) -> None:
    store.put("WeeklySchedules", "wk-1", _weekly())
    store.put("MonthlySchedules", "mo-1", _monthly())

    await materialize_recurring_schedules(store, now=NOW, tz=MANILA)
    first = store.documents("Schedules")

    result = await materialize_recurring_schedules(
        store, now=manila(2025, 7, 2, 12, 0), tz=MANILA
    )

    assert store.documents("Schedules") == first
    assert len(first) == 3
    assert result == {
        "weekly_schedules_created": 0,
        "monthly_schedules_created": 0,
    }


@pytest.mark.asyncio
async def test_existing_materialized_schedule_blocks_recreation(store) -> None:
    store.put("WeeklySchedules", "wk-1", _weekly())
    store.put(
        "Schedules",
        "hand-made",
        {
            "guard_id": "G1",
            "date": "2025-07-02",
            "parent_weekly_schedule_id": "wk-1",
        },
    )

    result = await materialize_recurring_schedules(store, now=NOW, tz=MANILA)

    assert result["weekly_schedules_created"] == 0
    assert list(store.documents("Schedules")) == ["hand-made"]


@pytest.mark.asyncio
async def test_overlapping_runs_converge_on_one_record_set(store) -> None:
    store.put("WeeklySchedules", "wk-1", _weekly())

    # both runs pass the existence check before either writes
    original_where = store.where
    seen = []

    async def stale_where(collection, **kwargs):
        if collection == "Schedules":
            seen.append(kwargs)
            return []
        return await original_where(collection, **kwargs)

    store.where = stale_where
    await materialize_recurring_schedules(store, now=NOW, tz=MANILA)
    await materialize_recurring_schedules(store, now=NOW, tz=MANILA)

    assert len(seen) == 2
    assert len(store.documents("Schedules")) == 2


@pytest.mark.asyncio
async def test_inactive_and_malformed_templates_are_skipped(store) -> None:
    store.put("WeeklySchedules", "wk-off", _weekly(is_active=False))
    store.put("WeeklySchedules", "wk-broken", _weekly(guard_ids=None))
    store.put(
        "WeeklySchedules", "wk-bad-date", _weekly(week_start_date="soon")
    )
    store.put("WeeklySchedules", "wk-1", _weekly())

    result = await materialize_recurring_schedules(store, now=NOW, tz=MANILA)

    schedules = store.documents("Schedules").values()
    parents = {s["parent_weekly_schedule_id"] for s in schedules}
    assert parents == {"wk-1"}
    assert result["weekly_schedules_created"] == 2


@pytest.mark.asyncio
async def test_store_error_aborts_run(store, monkeypatch) -> None:
    store.put("WeeklySchedules", "wk-1", _weekly())
    store.put("MonthlySchedules", "mo-1", _monthly())

    def _boom(ops):
        raise StoreError("write rejected")

    monkeypatch.setattr(store, "apply", _boom)

    with pytest.raises(StoreError):
        await materialize_recurring_schedules(store, now=NOW, tz=MANILA)
    assert store.documents("Schedules") == {}


@pytest.mark.parametrize(
    "week_start, covered",
    [
        ("2025-07-02", True),
        ("2025-06-26", True),
        ("2025-06-25", False),
        ("2025-07-03", False),
        ("2025-06-30T00:00:00.000Z", True),
    ],
)
def test_weekly_range_is_inclusive(week_start, covered) -> None:
    template = WeeklySchedule.model_validate(
        {**_weekly(week_start_date=week_start), "doc_id": "wk"}
    )
    assert weekly_template_covers(template, date(2025, 7, 2)) is covered


def test_monthly_cover_uses_year_and_month() -> None:
    template = MonthlySchedule.model_validate({**_monthly(), "doc_id": "mo"})
    assert monthly_template_covers(template, date(2025, 7, 31)) is True
    assert monthly_template_covers(template, date(2024, 7, 2)) is False


def test_weekly_start_instant_is_read_in_the_local_zone() -> None:
    # 2025-06-29 16:00 UTC is already Monday 2025-06-30 in Manila
    start = datetime(2025, 6, 29, 16, 0, tzinfo=UTC)
    template = WeeklySchedule.model_validate(
        {**_weekly(week_start_date=start), "doc_id": "wk"}
    )

    assert weekly_template_covers(template, date(2025, 7, 6), MANILA) is True
    assert weekly_template_covers(template, date(2025, 6, 29), MANILA) is False
    assert weekly_template_covers(template, date(2025, 7, 5), "UTC") is True
    assert weekly_template_covers(template, date(2025, 7, 6), "UTC") is False


@pytest.mark.asyncio
async def test_offset_start_string_materializes_on_the_local_week(
    store,
) -> None:
    store.put(
        "WeeklySchedules",
        "wk-utc",
        _weekly(week_start_date="2025-06-29T16:00:00Z"),
    )

    result = await materialize_recurring_schedules(
        store, now=manila(2025, 7, 6, 0, 30), tz=MANILA
    )

    assert result["weekly_schedules_created"] == 2
    dates = {s["date"] for s in store.documents("Schedules").values()}
    assert dates == {"2025-07-06"}


def test_naive_start_datetime_is_taken_as_local() -> None:
    template = WeeklySchedule.model_validate(
        {**_weekly(week_start_date="2025-06-30T23:00:00"), "doc_id": "wk"}
    )

    assert weekly_template_covers(template, date(2025, 6, 30), MANILA) is True
    assert weekly_template_covers(template, date(2025, 7, 7), MANILA) is False
