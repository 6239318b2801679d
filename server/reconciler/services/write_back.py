"""
Write-back helpers applying the one-retry optimistic concurrency policy
"""
from typing import Dict, Any
from loguru import logger

from ..models.schemas import Record
from ..utils.errors import NotFoundError, VersionConflictError


async def update_with_conflict_retry(store, record: Record, patch: Dict[str, Any]) -> Record:
    """Apply ``patch``; on a version conflict refetch and re-apply once.

    A second conflict propagates to the caller.
    """
    try:
        return await store.update(record, patch)
    except VersionConflictError:
        logger.warning(f"⚠️ Version conflict on {record.key}, refetching and retrying once")

    fresh = await store.fetch_one(record.key)
    return await store.update(fresh, patch)


async def delete_tolerant(store, record: Record) -> bool:
    """Delete a record; returns False when it was already gone.

    A version conflict refetches once to pick up the current version.
    """
    try:
        await store.delete(record.key, record.version)
        return True
    except NotFoundError:
        logger.info(f"{record.key} already deleted")
        return False
    except VersionConflictError:
        logger.warning(f"⚠️ Version conflict deleting {record.key}, refetching and retrying once")

    try:
        fresh = await store.fetch_one(record.key)
        await store.delete(fresh.key, fresh.version)
        return True
    except NotFoundError:
        logger.info(f"{record.key} already deleted")
        return False
