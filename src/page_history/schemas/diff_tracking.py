"""Pydantic schemas for diff tracking inputs and the diff record wire shape."""
import json
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class RevertScope(StrEnum):
    """Which part of a page a revert restores."""

    CONTENT = "content"
    DATA = "data"
    BOTH = "both"

    @property
    def reverts_data(self) -> bool:
        return self in (RevertScope.DATA, RevertScope.BOTH)

    @property
    def reverts_content(self) -> bool:
        return self in (RevertScope.CONTENT, RevertScope.BOTH)


class ContentChange(BaseModel):
    """Page content before and after an edit."""

    before: str = ""
    after: str = ""


class MetadataSnapshotPair(BaseModel):
    """Partial page metadata before and after an edit (camelCase keys)."""

    model_config = ConfigDict(frozen=True)

    before: dict[str, Any] = Field(default_factory=dict)
    after: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Encode as the JSON string stored on the diff row."""
        return json.dumps({"before": self.before, "after": self.after}, default=str)


class DiffInsert(BaseModel):
    """Snapshots of a single page edit to be recorded as a diff."""

    content: ContentChange = Field(default_factory=ContentChange)
    metadata: MetadataSnapshotPair = Field(default_factory=MetadataSnapshotPair)


class DiffInsertRequest(DiffInsert):
    """Request body for recording a diff over HTTP."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    actor_id: str = Field(min_length=1)
    max_diffs: int | None = Field(default=None, ge=1)


class MetadataDifferencesRequest(BaseModel):
    """Request body for comparing two metadata snapshots."""

    before: dict[str, Any]
    after: dict[str, Any]


class FieldDifferenceResponse(BaseModel):
    """Schema for a single labeled metadata difference."""

    model_config = ConfigDict(from_attributes=True)

    label: str
    previous: Any
    current: Any


class DiffRecordResponse(BaseModel):
    """
    Wire shape of a diff record.

    metadataSnapshot stays a JSON-encoded string and timestamps are ISO 8601
    UTC with millisecond precision ("2024-01-01T00:00:00.000Z").
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    record_id: str
    actor_id: str
    patch: str | None
    content_snapshot_before: str
    metadata_snapshot: str
    timestamp: datetime

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
