"""Diff tracking API endpoints for page history."""
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from page_history.db.session import get_async_session
from page_history.schemas.diff_tracking import (
    DiffInsert,
    DiffInsertRequest,
    DiffRecordResponse,
    FieldDifferenceResponse,
    MetadataDifferencesRequest,
    RevertScope,
)
from page_history.services.diff_store import DiffRecord
from page_history.services.diff_tracking_service import diff_tracking_service

router = APIRouter(prefix="/diffs", tags=["diffs"])


def _to_response(record: DiffRecord) -> DiffRecordResponse:
    return DiffRecordResponse(
        id=record.id,
        record_id=record.record_id,
        actor_id=record.actor_id,
        patch=record.patch,
        content_snapshot_before=record.content_snapshot_before,
        metadata_snapshot=record.metadata_snapshot_json,
        timestamp=record.timestamp,
    )


@router.get("/records/{record_id}", response_model=list[DiffRecordResponse])
async def get_record_diffs(
    record_id: str,
    latest: int | None = Query(
        default=None, ge=1, description="Only return the newest N diffs",
    ),
    db: AsyncSession = Depends(get_async_session),
) -> list[DiffRecordResponse]:
    """
    Get the diffs of a page, oldest first.

    Returns an empty list (not 404) when the page has no history.
    """
    if latest is None:
        records = await diff_tracking_service.get_by_record(db, record_id)
    else:
        records = await diff_tracking_service.get_latest_by_record(db, record_id, latest)
    return [_to_response(r) for r in records]


@router.post(
    "/records/{record_id}",
    response_model=DiffRecordResponse,
    status_code=201,
)
async def create_record_diff(
    record_id: str,
    body: DiffInsertRequest,
    db: AsyncSession = Depends(get_async_session),
) -> DiffRecordResponse:
    """Record an edit of a page; evicts the oldest diffs beyond the limit."""
    record = await diff_tracking_service.insert(
        db,
        body.actor_id,
        record_id,
        DiffInsert(content=body.content, metadata=body.metadata),
        max_diffs=body.max_diffs,
    )
    return _to_response(record)


@router.delete("/records/{record_id}", status_code=204)
async def clear_record_diffs(
    record_id: str,
    db: AsyncSession = Depends(get_async_session),
) -> Response:
    """Delete all diffs of a page."""
    await diff_tracking_service.clear(db, record_id)
    return Response(status_code=204)


@router.get("/actors/{actor_id}", response_model=list[DiffRecordResponse])
async def get_actor_diffs(
    actor_id: str,
    latest: int | None = Query(
        default=None, ge=1, description="Only return the newest N diffs",
    ),
    db: AsyncSession = Depends(get_async_session),
) -> list[DiffRecordResponse]:
    """Get the diffs made by a user, oldest first."""
    if latest is None:
        records = await diff_tracking_service.get_by_actor(db, actor_id)
    else:
        records = await diff_tracking_service.get_latest_by_actor(db, actor_id, latest)
    return [_to_response(r) for r in records]


@router.post("/metadata-differences", response_model=list[FieldDifferenceResponse])
async def compare_metadata(body: MetadataDifferencesRequest) -> list[FieldDifferenceResponse]:
    """Labeled differences between two metadata snapshots."""
    differences = diff_tracking_service.metadata_differences(body.before, body.after)
    return [FieldDifferenceResponse.model_validate(d) for d in differences]


@router.get("/{diff_id}", response_model=DiffRecordResponse)
async def get_diff(
    diff_id: str,
    db: AsyncSession = Depends(get_async_session),
) -> DiffRecordResponse:
    """
    Get a single diff.

    Returns:
    - 200 with the diff
    - 404 if the diff doesn't exist
    """
    record = await diff_tracking_service.get_single(db, diff_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Diff not found")
    return _to_response(record)


@router.get("/{diff_id}/html", response_class=HTMLResponse)
async def get_diff_html(
    diff_id: str,
    db: AsyncSession = Depends(get_async_session),
) -> HTMLResponse:
    """Render a diff's patch as a side-by-side HTML fragment."""
    record = await diff_tracking_service.get_single(db, diff_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Diff not found")
    return HTMLResponse(diff_tracking_service.render_diff_html(record.patch))


@router.post("/{diff_id}/revert", response_model=DiffRecordResponse)
async def revert_to_diff(
    diff_id: str,
    scope: RevertScope = Query(
        default=RevertScope.BOTH, description="What to restore: content, data or both",
    ),
    db: AsyncSession = Depends(get_async_session),
) -> DiffRecordResponse:
    """
    Revert a page to the state before a diff.

    Every newer diff of the page is deleted, so the target becomes the
    page's latest diff.

    Returns:
    - 200 with the target diff
    - 404 if the diff doesn't exist
    - 422 if the diff's metadata snapshot is missing the page id
    """
    record = await diff_tracking_service.revert(db, diff_id, scope)
    return _to_response(record)
