from __future__ import annotations

import logging
from collections.abc import Callable

from starlette.responses import FileResponse
from starlette.types import Receive, Scope, Send

from media_tools.config import Settings
from media_tools.errors import TransformFailed
from media_tools.models.job_contract import Artifact

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[bool], None]


class ArtifactResponse(FileResponse):
    """File response that reports completion exactly once, whatever happens to the transfer."""

    def __init__(self, artifact: Artifact, on_complete: CompletionCallback, chunk_size: int) -> None:
        super().__init__(
            artifact.path,
            media_type=artifact.media_type,
            filename=artifact.download_name,
            headers={"Cache-Control": "no-store"},
        )
        self.chunk_size = chunk_size
        self._on_complete = on_complete
        self._completed = False

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        succeeded = False
        try:
            await super().__call__(scope, receive, send)
            succeeded = True
        finally:
            self.complete(succeeded)

    def complete(self, succeeded: bool) -> None:
        if self._completed:
            return
        self._completed = True
        try:
            self._on_complete(succeeded)
        except Exception:
            logger.exception("stream.completion_callback_failed")


class ResultStreamer:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def stream(self, artifact: Artifact, on_complete: CompletionCallback) -> ArtifactResponse:
        try:
            size = artifact.path.stat().st_size
        except FileNotFoundError:
            size = 0
        if size == 0:
            raise TransformFailed("Transformation produced no output", artifact.path.name)
        logger.debug("stream.ready %s bytes=%d type=%s", artifact.download_name, size, artifact.media_type)
        return ArtifactResponse(artifact, on_complete, chunk_size=self.settings.stream_chunk_size)
