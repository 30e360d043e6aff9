"""DiffTracking model for storing per-page content/metadata change history."""
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from page_history.models.base import Base, UUIDv7Mixin


class DiffTracking(Base, UUIDv7Mixin):
    """
    One stored change to a page.

    Rows are immutable once written; they are only ever deleted (retention
    eviction, revert pruning, or clearing a page's history).

    - patch: unified diff between content before and after the change
    - content_snapshot_before: full content before the change, used for revert
    - metadata_snapshot: JSON-encoded string of {"before": {...}, "after": {...}}
    """

    __tablename__ = "diff_tracking"

    # id provided by UUIDv7Mixin
    record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)

    patch: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_snapshot_before: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_snapshot: Mapped[str] = mapped_column(Text, nullable=False)

    # Set by the application clock (not server default) so ordering is monotonic
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # Primary query: a page's history in time order (retention, revert pruning)
        Index("ix_diff_tracking_record_timestamp", "record_id", "timestamp"),
        # A user's activity in time order
        Index("ix_diff_tracking_actor_timestamp", "actor_id", "timestamp"),
    )
