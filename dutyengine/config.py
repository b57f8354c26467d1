import logging
import os

from dutyengine.database import MAX_BATCH_OPERATIONS

DEFAULT_TIMEZONE = "Asia/Manila"

TIMEZONE = (
    os.getenv("DUTY_ENGINE_TIMEZONE", DEFAULT_TIMEZONE).strip()
    or DEFAULT_TIMEZONE
)
LOG_LEVEL = (
    os.getenv("DUTY_ENGINE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def parse_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if not normalized:
        return None
    return normalized in {"true", "1", "yes", "y"}


def parse_port(value: str | None) -> int | None:
    try:
        port = int((value or "").strip())
    except ValueError:
        return None
    return port if port > 0 else None


def batch_size(value: str | None, *, default: int, ceiling: int) -> int:
    """Clamp an env-provided chunk size to ``1..ceiling``."""
    try:
        size = int((value or "").strip())
    except ValueError:
        size = default
    return min(ceiling, max(1, size))


# Each archived schedule costs two operations (archive copy + delete).
ARCHIVE_BATCH_SIZE = batch_size(
    os.getenv("DUTY_ENGINE_ARCHIVE_BATCH_SIZE"),
    default=200,
    ceiling=MAX_BATCH_OPERATIONS // 2,
)
CHECKPOINT_BATCH_SIZE = batch_size(
    os.getenv("DUTY_ENGINE_CHECKPOINT_BATCH_SIZE"),
    default=400,
    ceiling=MAX_BATCH_OPERATIONS,
)


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger("dutyengine")
    root.setLevel(level or LOG_LEVEL)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
