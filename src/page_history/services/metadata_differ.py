"""Labeled field-by-field comparison of two page metadata snapshots."""
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

# Bookkeeping fields that change on every save and are never shown as differences
IGNORED_FIELDS = frozenset({"publishedAt", "updatedAt", "authorId", "contributorIds"})

FIELD_LABELS: dict[str, str] = {
    "package": "Page Type",
    "title": "Page Title",
    "description": "Page Description",
    "showOnNav": "Show in Navigation",
    "slug": "Page Slug",
    "contentLang": "Content Language",
    "heroImage": "Hero/OG Image",
    "categories": "Page Categories",
    "tags": "Page Tags",
    "showAuthor": "Show Author",
    "showContributors": "Show Contributors",
    "parentFolder": "Parent Folder",
    "draft": "Draft",
}


@dataclass(frozen=True)
class FieldDifference:
    """A single metadata field whose value changed."""

    label: str
    previous: Any
    current: Any


def field_label(key: str) -> str:
    """Map a raw metadata key to its display label; unknown keys pass through."""
    return FIELD_LABELS.get(key, key)


def _same_value(previous: Any, current: Any) -> bool:
    """
    Identity-style equality for decoded JSON values.

    Booleans only equal booleans, so ``1`` and ``True`` differ, while ``1``
    and ``1.0`` are the same number. Nested lists and dicts are never the
    same value: two decoded snapshots never share a container.
    """
    if isinstance(previous, bool) or isinstance(current, bool):
        return type(previous) is type(current) and previous == current
    if isinstance(previous, int | float) and isinstance(current, int | float):
        return previous == current
    if isinstance(previous, list | dict) or isinstance(current, list | dict):
        return False
    return type(previous) is type(current) and previous == current


def _unchanged(previous: Any, current: Any) -> bool:
    """
    Whether a field kept its value.

    Top-level lists are compared element by element in order, each element
    with _same_value, so a reordered list or a list holding nested
    containers is a change. Dicts always count as changed.
    """
    if isinstance(previous, list) and isinstance(current, list):
        return len(previous) == len(current) and all(
            _same_value(a, b) for a, b in zip(previous, current)
        )
    return _same_value(previous, current)


def get_metadata_differences(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
) -> list[FieldDifference]:
    """
    Compare two metadata snapshots and return the labeled differences.

    Only keys of ``before`` are visited, in their insertion order. A key that
    exists only in ``after`` is never reported; downstream views rely on this.
    Keys missing from ``after`` and the bookkeeping fields in IGNORED_FIELDS
    are skipped.

    Args:
        before: Metadata snapshot before the change.
        after: Metadata snapshot after the change.

    Returns:
        One FieldDifference per changed field.
    """
    differences: list[FieldDifference] = []
    for key, previous in before.items():
        if key in IGNORED_FIELDS or key not in after:
            continue
        current = after[key]
        if _unchanged(previous, current):
            continue
        differences.append(
            FieldDifference(label=field_label(key), previous=previous, current=current),
        )
    return differences
