from datetime import UTC, datetime, timedelta

import pytest
import pytz

from dutyengine.database import InMemoryDocumentStore
from dutyengine.notifier import reset_mailer_cache

MANILA = "Asia/Manila"


def manila(
    year: int, month: int, day: int, hour: int = 0, minute: int = 0
) -> datetime:
    local = datetime(year, month, day, hour, minute)
    return pytz.timezone(MANILA).localize(local)


class FakeClock:
    """Stands in for the store's server clock; tests move it explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 7, 2, 0, 0, tzinfo=UTC))


@pytest.fixture
def store(clock: FakeClock) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(now_fn=clock)


@pytest.fixture(autouse=True)
def _fresh_mailer_cache():
    reset_mailer_cache()
    yield
    reset_mailer_cache()
