import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from dutyengine import config
from dutyengine.database import (
    CHECKPOINTS,
    InMemoryDocumentStore,
    is_valid_document_id,
)
from dutyengine.models import Checkpoint, CheckpointStatus, parse_documents

logger = logging.getLogger(__name__)

BASELINE_CHECKPOINT_STATE: dict[str, Any] = {
    "status": CheckpointStatus.NOT_YET_SCANNED.value,
    "lastScannedAt": None,
    "remarks": None,
    "lastScannedById": None,
    "lastScannedByName": None,
    "lastScannedBy": None,
}


def _checkpoint_doc_id(raw: Any) -> str | None:
    if isinstance(raw, bool) or not isinstance(raw, (str, int)):
        return None
    doc_id = str(raw).strip()
    return doc_id if is_valid_document_id(doc_id) else None


def chunked(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


async def _existing_ids(
    store: InMemoryDocumentStore, doc_ids: list[str]
) -> list[str]:
    snaps = await asyncio.gather(
        *(store.get(CHECKPOINTS, doc_id) for doc_id in doc_ids)
    )
    existing = []
    for doc_id, snap in zip(doc_ids, snaps):
        if snap is None:
            logger.warning(
                "Skipping missing checkpoint %s during reset",
                doc_id,
                extra={"checkpoint_id": doc_id},
            )
            continue
        existing.append(doc_id)
    return existing


async def reset_checkpoints(
    store: InMemoryDocumentStore,
    checkpoint_ids: Iterable[Any],
    *,
    chunk_size: int = config.CHECKPOINT_BATCH_SIZE,
) -> int:
    """
    Put the given checkpoints back to the unscanned baseline.

    Identifiers that cannot name a document, and checkpoints that no longer
    exist, are logged and skipped. Returns the number of checkpoints written.
    """
    doc_ids = []
    for raw in checkpoint_ids:
        doc_id = _checkpoint_doc_id(raw)
        if doc_id is None:
            logger.warning(
                "Skipping invalid checkpoint id during reset",
                extra={"value": repr(raw)},
            )
            continue
        doc_ids.append(doc_id)

    written = 0
    for chunk in chunked(doc_ids, chunk_size):
        existing = await _existing_ids(store, chunk)
        if not existing:
            continue
        batch = store.batch()
        for doc_id in existing:
            batch.update(CHECKPOINTS, doc_id, BASELINE_CHECKPOINT_STATE)
        await batch.commit()
        written += len(existing)

    return written


async def reset_all_checkpoints(
    store: InMemoryDocumentStore,
    *,
    chunk_size: int = config.CHECKPOINT_BATCH_SIZE,
) -> dict[str, int]:
    logger.info("Running daily checkpoint status reset")
    try:
        checkpoints = parse_documents(
            Checkpoint, await store.get_all(CHECKPOINTS)
        )
        if not checkpoints:
            logger.info("No checkpoints found to reset.")
            return {"checkpoints_reset": 0}

        for checkpoint in checkpoints:
            logger.debug(
                "Resetting status for checkpoint %s", checkpoint.doc_id
            )
        count = await reset_checkpoints(
            store,
            [checkpoint.doc_id for checkpoint in checkpoints],
            chunk_size=chunk_size,
        )
    except Exception:
        logger.exception("Error resetting checkpoint statuses")
        raise

    logger.info(
        "Reset statuses for %d checkpoints", count, extra={"count": count}
    )
    return {"checkpoints_reset": count}
