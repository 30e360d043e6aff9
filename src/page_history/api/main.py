"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from page_history.api.routers import diffs, health
from page_history.services.exceptions import DiffErrorKind, DiffTrackingError

logger = logging.getLogger(__name__)

# Not-found and corrupted-snapshot errors are the client's concern; the rest are ours
ERROR_STATUS_CODES: dict[DiffErrorKind, int] = {
    DiffErrorKind.DIFF_NOT_FOUND: 404,
    DiffErrorKind.INVALID_METADATA_STRUCTURE: 422,
    DiffErrorKind.STORAGE: 500,
    DiffErrorKind.PATCH: 500,
}

app = FastAPI(
    title="Page History API",
    description="Diff tracking, retention and revert for CMS pages",
    version="0.1.0",
)


@app.exception_handler(DiffTrackingError)
async def diff_tracking_exception_handler(
    _request: Request, exc: DiffTrackingError,
) -> JSONResponse:
    """Map diff tracking error kinds to HTTP status codes."""
    status_code = ERROR_STATUS_CODES[exc.kind]
    if status_code >= 500:
        logger.error("Diff tracking failure (%s): %s", exc.kind.value, exc)
        detail = "Internal error while processing page history"
    else:
        detail = str(exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error": exc.kind.value},
    )


app.include_router(health.router)
app.include_router(diffs.router)
