"""Reverting a page to a stored diff while keeping history linear."""
import logging

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from page_history.core.locks import KeyedLock, record_locks
from page_history.models.diff_tracking import DiffTracking
from page_history.schemas.diff_tracking import RevertScope
from page_history.services.diff_store import DiffRecord, DiffStore, diff_store
from page_history.services.exceptions import DiffNotFoundError, InvalidMetadataStructureError
from page_history.services.record_store import RecordStore

logger = logging.getLogger(__name__)

# Metadata snapshots identify their page by this key
PAGE_ID_FIELD = "id"


class RevertEngine:
    """
    Restores a page's content and/or metadata to the state before a diff.

    A revert runs these steps in order and stops at the first failure:

    1. Lookup - load the target diff (DiffNotFoundError if absent)
    2. Validate metadata - data/both only; both snapshots must carry the page id
    3. Apply metadata - data/both only; write the "before" snapshot
    4. Apply content - content/both only; write content_snapshot_before
    5. Prune - delete every diff of the page that comes after the target

    Diffs older than the target are kept. Steps 2-5 run under the page's
    lock, keyed to the caller's session, and all writes go through that
    session, so the caller's commit or rollback covers the whole revert.
    Inside ``record_locks.until_released(db)`` the lock outlives the commit.
    """

    def __init__(self, store: DiffStore = diff_store, locks: KeyedLock = record_locks) -> None:
        self.store = store
        self.locks = locks

    async def revert(
        self,
        db: AsyncSession,
        diff_id: str,
        scope: RevertScope | str,
        record_store: RecordStore,
    ) -> DiffRecord:
        """
        Revert a page to the state captured by a diff.

        Calling this again with the same diff is safe: nothing newer is left
        to prune, and the same values are written again.

        Args:
            db: Database session.
            diff_id: ID of the diff to revert to.
            scope: What to restore: "content", "data" or "both".
            record_store: Where the page's current state is written.

        Returns:
            The target diff, now the newest diff of its page.

        Raises:
            ValueError: If scope is not a known RevertScope.
            DiffNotFoundError: If the diff does not exist.
            InvalidMetadataStructureError: If the metadata snapshots lack the page id
                or name different pages.
            StorageError: If any read or write fails.
        """
        scope = RevertScope(scope)

        row = await self.store.get_by_id(db, diff_id)
        if row is None:
            raise DiffNotFoundError(diff_id)

        async with self.locks.hold(row.record_id, owner=db):
            entry = DiffRecord.from_row(row)

            if scope.reverts_data:
                page_id = self._validated_page_id(entry)
                try:
                    await record_store.write_metadata(page_id, entry.metadata_snapshot.before)
                except ValidationError as e:
                    raise InvalidMetadataStructureError(
                        entry.id, f"snapshot does not match page metadata: {e}",
                    ) from e

            if scope.reverts_content:
                await record_store.write_content(entry.record_id, entry.content_snapshot_before)

            pruned = await self._prune_newer(db, entry)

        logger.info(
            "Reverted record %s to diff %s (scope=%s, pruned=%d)",
            entry.record_id,
            entry.id,
            scope.value,
            pruned,
        )
        return entry

    @staticmethod
    def _validated_page_id(entry: DiffRecord) -> str:
        """
        Return the id of the page the "before" snapshot is written to.

        Both sides must carry the same non-empty id; it is never inferred
        from the diff's record_id.
        """
        before_id = entry.metadata_snapshot.before.get(PAGE_ID_FIELD)
        after_id = entry.metadata_snapshot.after.get(PAGE_ID_FIELD)
        if not before_id:
            raise InvalidMetadataStructureError(entry.id, "before snapshot has no id")
        if not after_id:
            raise InvalidMetadataStructureError(entry.id, "after snapshot has no id")
        if str(before_id) != str(after_id):
            raise InvalidMetadataStructureError(
                entry.id, f"snapshot ids differ ({before_id!r} != {after_id!r})",
            )
        return str(before_id)

    async def _prune_newer(self, db: AsyncSession, entry: DiffRecord) -> int:
        """Delete every diff of the page positioned after ``entry``."""
        rows: list[DiffTracking] = await self.store.list_by_record(db, entry.record_id)
        index = next((i for i, r in enumerate(rows) if r.id == entry.id), None)
        if index is None:
            # Deleted by another session between lookup and prune
            logger.warning(
                "Diff %s disappeared from record %s during revert", entry.id, entry.record_id,
            )
            raise DiffNotFoundError(entry.id)
        newer_ids = [r.id for r in rows[index + 1:]]
        return await self.store.delete_many(db, newer_ids)


# Singleton instance for use throughout the application
revert_engine = RevertEngine()
