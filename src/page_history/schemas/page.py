"""Pydantic schemas for page metadata snapshots."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PageMetadata(BaseModel):
    """
    Full metadata snapshot of a page, serialized with camelCase keys.

    This is the shape recorded in a diff's metadata snapshot and the shape
    the metadata differ labels (e.g. ``slug`` -> "Page Slug").
    """

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str
    package: str
    title: str
    description: str
    show_on_nav: bool
    published_at: datetime | None = None
    updated_at: datetime | None = None
    slug: str
    content_lang: str
    hero_image: str | None = None
    categories: list = []
    tags: list = []
    author_id: str | None = None
    contributor_ids: list = []
    show_author: bool
    show_contributors: bool
    parent_folder: str | None = None
    draft: bool
    augments: list = []


class PageMetadataUpdate(BaseModel):
    """
    Partial metadata written back during a revert.

    Snapshots from older schemas may lack fields; only fields present in the
    snapshot are applied (use model_dump(exclude_unset=True)). Unknown keys
    from newer schemas are ignored. The id is never updated.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    package: str | None = None
    title: str | None = None
    description: str | None = None
    show_on_nav: bool | None = None
    published_at: datetime | None = None
    updated_at: datetime | None = None
    slug: str | None = None
    content_lang: str | None = None
    hero_image: str | None = None
    categories: list | None = None
    tags: list | None = None
    author_id: str | None = None
    contributor_ids: list | None = None
    show_author: bool | None = None
    show_contributors: bool | None = None
    parent_folder: str | None = None
    draft: bool | None = None
    augments: list | None = None
