"""Access to the current state of a page (content and metadata)."""
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from page_history.models.page import PageContent, PageData
from page_history.schemas.page import PageMetadata, PageMetadataUpdate
from page_history.services.exceptions import StorageError


class RecordStore(Protocol):
    """Protocol for reading and writing a page's current content and metadata."""

    async def read_content(self, record_id: str) -> str | None:
        """Return the page's current content, or None if the page has none."""
        ...

    async def write_content(self, record_id: str, text: str) -> None:
        """Replace the page's current content."""
        ...

    async def read_metadata(self, record_id: str) -> dict[str, Any] | None:
        """Return the page's current metadata snapshot, or None if unknown."""
        ...

    async def write_metadata(self, record_id: str, snapshot: dict[str, Any]) -> None:
        """Apply a (possibly partial) metadata snapshot to the page."""
        ...


class SqlRecordStore:
    """
    RecordStore over the page_data and page_content tables.

    Bound to the caller's session so writes made during a revert commit or
    roll back together with the diff pruning.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_content_row(self, record_id: str) -> PageContent | None:
        stmt = (
            select(PageContent)
            .where(PageContent.content_id == record_id)
            .order_by(PageContent.id.asc())
            .limit(1)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read content for record {record_id}: {e}") from e
        return result.scalar_one_or_none()

    async def _get_data_row(self, record_id: str) -> PageData | None:
        try:
            return await self.db.get(PageData, record_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read metadata for record {record_id}: {e}") from e

    async def read_content(self, record_id: str) -> str | None:
        row = await self._get_content_row(record_id)
        return row.content if row is not None else None

    async def write_content(self, record_id: str, text: str) -> None:
        """
        Replace the content of a page.

        Raises:
            StorageError: If the page has no content row or the write fails.
        """
        row = await self._get_content_row(record_id)
        if row is None:
            raise StorageError(f"No content found for record {record_id}")
        row.content = text
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write content for record {record_id}: {e}") from e

    async def read_metadata(self, record_id: str) -> dict[str, Any] | None:
        row = await self._get_data_row(record_id)
        if row is None:
            return None
        return PageMetadata.model_validate(row).model_dump(mode="json", by_alias=True)

    async def write_metadata(self, record_id: str, snapshot: dict[str, Any]) -> None:
        """
        Apply a metadata snapshot to a page.

        Handles schema evolution gracefully: only known fields present in the
        snapshot are written, unknown keys are ignored, and the page id is
        never changed.

        Raises:
            StorageError: If the page does not exist or the write fails.
        """
        row = await self._get_data_row(record_id)
        if row is None:
            raise StorageError(f"No metadata found for record {record_id}")
        update = PageMetadataUpdate.model_validate(snapshot)
        for field_name, value in update.model_dump(exclude_unset=True).items():
            setattr(row, field_name, value)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write metadata for record {record_id}: {e}") from e
