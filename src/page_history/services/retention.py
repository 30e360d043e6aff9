"""Per-page retention limit for stored diffs."""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from page_history.services.diff_store import DiffStore, diff_store
from page_history.services.exceptions import StorageError

logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Keeps at most ``max_diffs`` diffs per page by evicting the oldest first.

    Called after the new diff has been inserted, in the same unit of work,
    so the count after an insert is exactly ``min(total, max_diffs)`` and the
    just-inserted (newest) diff is never the one evicted.
    """

    def __init__(self, store: DiffStore = diff_store) -> None:
        self.store = store

    async def enforce(self, db: AsyncSession, record_id: str, max_diffs: int) -> int:
        """
        Evict the oldest diffs of a page until at most ``max_diffs`` remain.

        Args:
            db: Database session.
            record_id: Page whose history is pruned.
            max_diffs: Maximum number of diffs to keep (must be >= 1).

        Returns:
            Number of evicted diffs.

        Raises:
            ValueError: If max_diffs is less than 1.
            StorageError: If the overflow could not be deleted.
        """
        if max_diffs < 1:
            raise ValueError(f"max_diffs must be at least 1, got {max_diffs}")

        rows = await self.store.list_by_record(db, record_id)
        overflow = len(rows) - max_diffs
        if overflow <= 0:
            return 0

        evict_ids = [row.id for row in rows[:overflow]]
        deleted = await self.store.delete_many(db, evict_ids)
        if deleted != overflow:
            # Another writer removed some of them first; re-check the bound
            remaining = len(await self.store.list_by_record(db, record_id))
            if remaining > max_diffs:
                raise StorageError(
                    f"Retention for record {record_id} left {remaining} diffs "
                    f"(limit {max_diffs})",
                )
        logger.debug(
            "Evicted %d diffs for record %s (limit %d)", deleted, record_id, max_diffs,
        )
        return deleted


# Singleton instance for use throughout the application
retention_manager = RetentionManager()
