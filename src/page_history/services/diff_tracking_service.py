"""Service layer for recording, listing and reverting page diffs."""
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from page_history.core.clock import MonotonicClock, clock
from page_history.core.config import Settings, get_settings
from page_history.core.locks import KeyedLock, record_locks
from page_history.models.diff_tracking import DiffTracking
from page_history.schemas.diff_tracking import DiffInsert, RevertScope
from page_history.services.diff_renderer import RenderOptions, render_diff_html
from page_history.services.diff_store import DiffRecord, DiffStore, diff_store, latest
from page_history.services.metadata_differ import FieldDifference, get_metadata_differences
from page_history.services.patch_engine import create_patch
from page_history.services.record_store import RecordStore, SqlRecordStore
from page_history.services.retention import RetentionManager
from page_history.services.revert_engine import RevertEngine

logger = logging.getLogger(__name__)


class DiffTrackingService:
    """
    Records page edits as diffs, enforces the per-page limit, and reverts.

    All methods take the request's session and only flush; the caller
    commits once, so an insert and its retention pruning (or every step of a
    revert) succeed or fail together. Page locks are taken with the session
    as owner; get_async_session keeps them until its commit or rollback, so
    the next writer of the page sees this one's rows.
    """

    def __init__(
        self,
        store: DiffStore = diff_store,
        time_source: MonotonicClock = clock,
        locks: KeyedLock = record_locks,
    ) -> None:
        self.store = store
        self.clock = time_source
        self.locks = locks
        self.retention = RetentionManager(store)
        self.reverter = RevertEngine(store, locks)

    async def insert(
        self,
        db: AsyncSession,
        actor_id: str,
        record_id: str,
        data: DiffInsert,
        max_diffs: int | None = None,
    ) -> DiffRecord:
        """
        Record one edit of a page.

        Builds the content patch, inserts the diff, then evicts the oldest
        diffs of the page so at most ``max_diffs`` remain.

        Args:
            db: Database session.
            actor_id: ID of the user who made the edit.
            record_id: ID of the edited page.
            data: Content and metadata snapshots before and after the edit.
            max_diffs: Per-page limit. Defaults to the diffs_per_page setting.

        Returns:
            The stored diff.

        Raises:
            ValueError: If max_diffs is less than 1.
            PatchError: If the patch could not be built.
            StorageError: If the insert or pruning failed.
        """
        if max_diffs is None:
            max_diffs = get_settings().diffs_per_page
        if max_diffs < 1:
            raise ValueError(f"max_diffs must be at least 1, got {max_diffs}")

        patch = create_patch(data.content.before, data.content.after)

        async with self.locks.hold(record_id, owner=db):
            row = DiffTracking(
                record_id=record_id,
                actor_id=actor_id,
                patch=patch,
                content_snapshot_before=data.content.before,
                metadata_snapshot=data.metadata.to_json(),
                timestamp=self.clock.now(),
            )
            await self.store.insert(db, row)
            evicted = await self.retention.enforce(db, record_id, max_diffs)

        logger.debug(
            "Recorded diff %s for record %s by %s (evicted=%d)",
            row.id, record_id, actor_id, evicted,
        )
        return DiffRecord.from_row(row)

    async def record_edit(
        self,
        db: AsyncSession,
        actor_id: str,
        record_id: str,
        data: DiffInsert,
        settings: Settings | None = None,
    ) -> DiffRecord | None:
        """
        Record a page edit if diff tracking is enabled.

        Hook for the page update flow: returns None without writing anything
        when enable_diffs is off, otherwise inserts with the configured
        per-page limit.
        """
        settings = settings or get_settings()
        if not settings.enable_diffs:
            return None
        return await self.insert(
            db, actor_id, record_id, data, max_diffs=settings.diffs_per_page,
        )

    async def clear(self, db: AsyncSession, record_id: str) -> int:
        """Delete all diffs of a page. Returns the number deleted."""
        async with self.locks.hold(record_id, owner=db):
            deleted = await self.store.clear_by_record(db, record_id)
        logger.info("Cleared %d diffs for record %s", deleted, record_id)
        return deleted

    async def get_by_record(self, db: AsyncSession, record_id: str) -> list[DiffRecord]:
        """All diffs of a page, oldest first."""
        rows = await self.store.list_by_record(db, record_id)
        return [DiffRecord.from_row(r) for r in rows]

    async def get_latest_by_record(
        self, db: AsyncSession, record_id: str, count: int,
    ) -> list[DiffRecord]:
        """The newest ``count`` diffs of a page, oldest first."""
        rows = await self.store.list_by_record(db, record_id)
        return [DiffRecord.from_row(r) for r in latest(rows, count)]

    async def get_by_actor(self, db: AsyncSession, actor_id: str) -> list[DiffRecord]:
        """All diffs made by a user, oldest first."""
        rows = await self.store.list_by_actor(db, actor_id)
        return [DiffRecord.from_row(r) for r in rows]

    async def get_latest_by_actor(
        self, db: AsyncSession, actor_id: str, count: int,
    ) -> list[DiffRecord]:
        """The newest ``count`` diffs made by a user, oldest first."""
        rows = await self.store.list_by_actor(db, actor_id)
        return [DiffRecord.from_row(r) for r in latest(rows, count)]

    async def get_single(self, db: AsyncSession, diff_id: str) -> DiffRecord | None:
        """A single diff by id, or None if it does not exist."""
        row = await self.store.get_by_id(db, diff_id)
        return DiffRecord.from_row(row) if row is not None else None

    async def revert(
        self,
        db: AsyncSession,
        diff_id: str,
        scope: RevertScope | str,
        record_store: RecordStore | None = None,
    ) -> DiffRecord:
        """
        Revert a page to a diff and drop every newer diff of that page.

        Args:
            db: Database session.
            diff_id: ID of the diff to revert to.
            scope: "content", "data" or "both".
            record_store: Page state store; defaults to SqlRecordStore on ``db``.

        Returns:
            The target diff.
        """
        if record_store is None:
            record_store = SqlRecordStore(db)
        return await self.reverter.revert(db, diff_id, scope, record_store)

    @staticmethod
    def metadata_differences(
        before: Mapping[str, Any], after: Mapping[str, Any],
    ) -> list[FieldDifference]:
        """Labeled differences between two metadata snapshots."""
        return get_metadata_differences(before, after)

    @staticmethod
    def render_diff_html(patch: str | None, options: RenderOptions | None = None) -> str:
        """HTML rendering of a stored patch."""
        return render_diff_html(patch, options)


# Singleton instance for use throughout the application
diff_tracking_service = DiffTrackingService()
