"""Page models: the current metadata and content that diffs are recorded against."""
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from page_history.models.base import Base, UUIDv7Mixin


class PageData(Base, UUIDv7Mixin):
    """
    Structured metadata of a page.

    Metadata snapshots stored with each diff are partial copies of this row,
    keyed by the camelCase names in PageMetadata (see schemas.page).
    """

    __tablename__ = "page_data"

    package: Mapped[str] = mapped_column(String(100), nullable=False, default="markdown")
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    show_on_nav: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    slug: Mapped[str] = mapped_column(String(500), nullable=False)
    content_lang: Mapped[str] = mapped_column(String(20), nullable=False, default="default")
    hero_image: Mapped[str | None] = mapped_column(Text)
    categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    author_id: Mapped[str | None] = mapped_column(String(64))
    contributor_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    show_author: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_contributors: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_folder: Mapped[str | None] = mapped_column(String(64))
    draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    augments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class PageContent(Base, UUIDv7Mixin):
    """Content body of a page, one row per page and language."""

    __tablename__ = "page_content"

    content_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("page_data.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content_lang: Mapped[str] = mapped_column(String(20), nullable=False, default="default")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
