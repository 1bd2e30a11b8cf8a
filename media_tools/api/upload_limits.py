import logging
from collections.abc import Mapping

from fastapi.responses import PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from media_tools.config import Settings
from media_tools.errors import PayloadTooLarge
from media_tools.pipeline.job_pipeline import MAX_AUDIO_MERGE_INPUTS

logger = logging.getLogger(__name__)

# Room for multipart boundaries, part headers and the small form fields.
FORM_OVERHEAD_BYTES = 1024 * 1024

_UPLOADS_PER_ROUTE = {
    "/audio/compress": 1,
    "/audio/merge": MAX_AUDIO_MERGE_INPUTS,
    "/image/convert": 1,
    "/image/watermark": 1,
    "/image/resize": 1,
    "/video": 1,
}


def request_budgets(settings: Settings) -> dict[str, int]:
    """Largest acceptable request body per upload route.

    ``/pdf/merge`` accepts any number of files, so it has no declared budget
    and relies on the per-file check alone.
    """
    return {
        path: settings.max_file_size_bytes * uploads + FORM_OVERHEAD_BYTES
        for path, uploads in _UPLOADS_PER_ROUTE.items()
    }


class UploadSizeMiddleware:
    """Turn away bodies whose declared Content-Length exceeds the route budget before they are spooled."""

    def __init__(self, app: ASGIApp, budgets: Mapping[str, int]) -> None:
        self.app = app
        self.budgets = dict(budgets)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http" or scope.get("method") != "POST":
            await self.app(scope, receive, send)
            return

        budget = self.budgets.get(scope.get("path", "").rstrip("/") or "/")
        declared = _content_length(scope)
        if budget is None or declared is None or declared <= budget:
            await self.app(scope, receive, send)
            return

        error = PayloadTooLarge(f"Request body of {declared} bytes exceeds the {budget} byte limit")
        logger.warning("upload.rejected path=%s declared=%d budget=%d", scope.get("path"), declared, budget)
        response = PlainTextResponse(str(error), status_code=error.status_code, headers={"X-Error-Kind": error.kind})
        await response(scope, receive, send)


def _content_length(scope: Scope) -> int | None:
    for name, value in scope.get("headers", ()):
        if name == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None
