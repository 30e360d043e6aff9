"""Persistence of diff records, scoped by page (record) or user (actor)."""
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from page_history.models.diff_tracking import DiffTracking
from page_history.schemas.diff_tracking import MetadataSnapshotPair
from page_history.services.exceptions import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffRecord:
    """
    Immutable view of a stored diff with its metadata snapshot decoded.

    The row keeps metadata_snapshot as a JSON string; here it is parsed into
    a MetadataSnapshotPair. A snapshot that is not valid JSON decodes to an
    empty pair, which revert then rejects as an invalid structure.
    """

    id: str
    record_id: str
    actor_id: str
    patch: str | None
    content_snapshot_before: str
    metadata_snapshot: MetadataSnapshotPair
    timestamp: datetime

    @classmethod
    def from_row(cls, row: DiffTracking) -> "DiffRecord":
        """Build a DiffRecord from a DiffTracking row."""
        timestamp = row.timestamp
        if timestamp.tzinfo is None:
            # SQLite drops the offset; timestamps are always written in UTC
            timestamp = timestamp.replace(tzinfo=UTC)
        return cls(
            id=row.id,
            record_id=row.record_id,
            actor_id=row.actor_id,
            patch=row.patch,
            content_snapshot_before=row.content_snapshot_before,
            metadata_snapshot=decode_metadata_snapshot(row.metadata_snapshot),
            timestamp=timestamp,
        )

    @property
    def metadata_snapshot_json(self) -> str:
        """The snapshot re-encoded as the stored JSON string."""
        return self.metadata_snapshot.to_json()


def decode_metadata_snapshot(raw: str | None) -> MetadataSnapshotPair:
    """
    Parse a stored ``{"before": ..., "after": ...}`` JSON string.

    Missing or non-object sides decode to empty dicts rather than failing, so
    listing history never breaks on one corrupted row.
    """
    try:
        parsed = json.loads(raw) if raw else {}
    except ValueError:
        logger.warning("Undecodable metadata snapshot: %.80r", raw)
        parsed = {}
    if not isinstance(parsed, dict):
        parsed = {}
    before = parsed.get("before")
    after = parsed.get("after")
    return MetadataSnapshotPair(
        before=before if isinstance(before, dict) else {},
        after=after if isinstance(after, dict) else {},
    )


class DiffStore:
    """
    CRUD over DiffTracking rows.

    Lists are ascending by (timestamp, id); UUIDv7 ids break timestamp ties
    in insertion order. Backend failures are raised as StorageError. Methods
    only flush; the caller's unit of work commits.
    """

    async def insert(self, db: AsyncSession, row: DiffTracking) -> DiffTracking:
        """
        Persist a new diff row.

        Raises:
            StorageError: On duplicate id or any backend failure.
        """
        try:
            db.add(row)
            await db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert diff {row.id}: {e}") from e
        return row

    async def delete_by_id(self, db: AsyncSession, diff_id: str) -> int:
        """
        Delete one diff by id.

        Idempotent: deleting an id that is already gone is not an error.

        Returns:
            Number of deleted rows (0 or 1).
        """
        stmt = delete(DiffTracking).where(DiffTracking.id == diff_id)
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete diff {diff_id}: {e}") from e
        return result.rowcount

    async def delete_many(self, db: AsyncSession, diff_ids: list[str]) -> int:
        """Delete several diffs by id in one statement; missing ids are ignored."""
        if not diff_ids:
            return 0
        stmt = delete(DiffTracking).where(DiffTracking.id.in_(diff_ids))
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete {len(diff_ids)} diffs: {e}") from e
        return result.rowcount

    async def get_by_id(self, db: AsyncSession, diff_id: str) -> DiffTracking | None:
        """Get a diff by id, or None if it does not exist."""
        stmt = select(DiffTracking).where(DiffTracking.id == diff_id)
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load diff {diff_id}: {e}") from e
        return result.scalar_one_or_none()

    async def list_by_record(self, db: AsyncSession, record_id: str) -> list[DiffTracking]:
        """All diffs of a page, oldest first."""
        stmt = (
            select(DiffTracking)
            .where(DiffTracking.record_id == record_id)
            .order_by(DiffTracking.timestamp.asc(), DiffTracking.id.asc())
        )
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list diffs for record {record_id}: {e}") from e
        return list(result.scalars().all())

    async def list_by_actor(self, db: AsyncSession, actor_id: str) -> list[DiffTracking]:
        """All diffs made by a user, oldest first."""
        stmt = (
            select(DiffTracking)
            .where(DiffTracking.actor_id == actor_id)
            .order_by(DiffTracking.timestamp.asc(), DiffTracking.id.asc())
        )
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list diffs for actor {actor_id}: {e}") from e
        return list(result.scalars().all())

    async def clear_by_record(self, db: AsyncSession, record_id: str) -> int:
        """
        Delete every diff of a page (e.g. when the page itself is deleted).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(DiffTracking).where(DiffTracking.record_id == record_id)
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to clear diffs for record {record_id}: {e}") from e
        return result.rowcount


def latest(rows: list[DiffTracking], count: int) -> list[DiffTracking]:
    """
    Take the newest ``count`` rows of an ascending list, keeping ascending order.

    A non-positive count yields an empty list.
    """
    if count <= 0:
        return []
    return rows[-count:]


# Singleton instance for use throughout the application
diff_store = DiffStore()
