from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Sequence
from functools import partial

import structlog
from pydantic import ValidationError as SpecValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from media_tools.config import Settings
from media_tools.engines.image_engine import parse_color
from media_tools.engines.transform_invoker import CancellationToken, TransformInvoker
from media_tools.errors import MediaToolsError, ValidationError
from media_tools.models.job_contract import ConversionSpec, JobContext, JobState, WatermarkConfig, Workspace
from media_tools.services import request_validators as validators
from media_tools.services.asset_stager import AssetStager
from media_tools.services.result_streamer import ArtifactResponse, ResultStreamer
from media_tools.services.workspace_service import WorkspaceService
from media_tools.utils.filesystem import extension_of

logger = structlog.get_logger(__name__)

MAX_AUDIO_MERGE_INPUTS = 20

_FALLBACK_EXTENSIONS = {"audio": ".mp3", "image": ".png", "pdf": ".pdf", "video": ".mp4"}

Validator = Callable[[], tuple[ConversionSpec, list[UploadFile]]]


class JobPipeline:
    """Runs one request through validate, stage, transform and stream, owning its workspace throughout."""

    def __init__(
        self,
        settings: Settings,
        *,
        workspaces: WorkspaceService | None = None,
        stager: AssetStager | None = None,
        invoker: TransformInvoker | None = None,
        streamer: ResultStreamer | None = None,
    ) -> None:
        self.settings = settings
        self.workspaces = workspaces or WorkspaceService(settings)
        self.stager = stager or AssetStager(settings)
        self.invoker = invoker or TransformInvoker(settings)
        self.streamer = streamer or ResultStreamer(settings)

    async def compress_audio(
        self, audio: UploadFile | None, quality: str | None, cancel: CancellationToken | None = None
    ) -> ArtifactResponse:
        def validate() -> tuple[ConversionSpec, list[UploadFile]]:
            upload = validators.require_file(audio, "audio", "No audio uploaded")
            level = validators.clamped_int(quality, default=50, low=10, high=100)
            return ConversionSpec(media="audio", operation="compress", quality=level), [upload]

        return await self.run("/audio/compress", validate, cancel)

    async def merge_audio(
        self, audios: Sequence[UploadFile] | None, cancel: CancellationToken | None = None
    ) -> ArtifactResponse:
        def validate() -> tuple[ConversionSpec, list[UploadFile]]:
            uploads = validators.require_files(
                audios,
                "audios",
                min_count=2,
                max_count=MAX_AUDIO_MERGE_INPUTS,
                message="Upload at least 2 audio files",
            )
            return ConversionSpec(media="audio", operation="merge"), uploads

        return await self.run("/audio/merge", validate, cancel)

    async def convert_image(self, image: UploadFile | None, fmt: str | None) -> ArtifactResponse:
        def validate() -> tuple[ConversionSpec, list[UploadFile]]:
            upload = validators.require_file(image, "image", "No image uploaded")
            target = validators.require_text(fmt, "format")
            return ConversionSpec(media="image", operation="convert", output_format=target), [upload]

        return await self.run("/image/convert", validate)

    async def watermark_image(
        self,
        image: UploadFile | None,
        text: str | None,
        font_size: str | None,
        color: str | None,
        opacity: str | None,
        position: str | None,
    ) -> ArtifactResponse:
        def validate() -> tuple[ConversionSpec, list[UploadFile]]:
            upload = validators.require_file(image, "image", "No image uploaded")
            watermark = WatermarkConfig(
                text=validators.require_text(text, "text"),
                font_size=validators.clamped_int(font_size, default=18, low=8, high=512),
                color=parse_color(color, default=(0, 0, 0)) if color else (255, 0, 0),
                opacity=validators.clamped_float(opacity, default=1.0, low=0.0, high=1.0),
                position=validators.watermark_position(position),
            )
            return ConversionSpec(media="image", operation="watermark", watermark=watermark), [upload]

        return await self.run("/image/watermark", validate)

    async def resize_image(
        self, image: UploadFile | None, width: str | None, height: str | None, fmt: str | None
    ) -> ArtifactResponse:
        def validate() -> tuple[ConversionSpec, list[UploadFile]]:
            upload = validators.require_file(image, "image", "No image uploaded")
            spec = ConversionSpec(
                media="image",
                operation="resize",
                width=validators.positive_dimension(width, "width"),
                height=validators.positive_dimension(height, "height"),
                output_format=fmt or "png",
            )
            return spec, [upload]

        return await self.run("/image/resize", validate)

    async def merge_pdfs(self, pdfs: Sequence[UploadFile] | None) -> ArtifactResponse:
        def validate() -> tuple[ConversionSpec, list[UploadFile]]:
            uploads = validators.require_files(pdfs, "pdfs", min_count=1, message="No PDFs uploaded")
            return ConversionSpec(media="pdf", operation="merge"), uploads

        return await self.run("/pdf/merge", validate)

    async def transcode_video(
        self,
        video: UploadFile | None,
        fmt: str | None,
        resolution: str | None,
        cancel: CancellationToken | None = None,
    ) -> ArtifactResponse:
        def validate() -> tuple[ConversionSpec, list[UploadFile]]:
            upload = validators.require_file(video, "video", "No video uploaded")
            spec = ConversionSpec(
                media="video",
                operation="transcode",
                output_format=validators.video_format(fmt),
                resolution=validators.video_resolution(resolution),
            )
            return spec, [upload]

        return await self.run("/video", validate, cancel)

    async def run(
        self, route: str, validate: Validator, cancel: CancellationToken | None = None
    ) -> ArtifactResponse:
        job = JobContext(job_id=uuid.uuid4().hex[:12], route=route)
        log = logger.bind(job_id=job.job_id, route=route)
        started = time.perf_counter()

        try:
            spec, uploads = validate()
            for upload in uploads:
                self.stager.check_size(upload.file, upload.filename or "upload")
        except SpecValidationError as exc:
            error = ValidationError(_first_error(exc))
            self._fail(job, log, error)
            raise error from exc
        except MediaToolsError as exc:
            self._fail(job, log, exc)
            raise
        job.advance(JobState.VALIDATED)
        log.info("job.validated", media=spec.media, operation=spec.operation, inputs=len(uploads))

        try:
            with self.workspaces.scoped() as workspace:
                assets = []
                ordered = len(uploads) > 1 or spec.operation == "merge"
                for index, upload in enumerate(uploads):
                    asset = await run_in_threadpool(
                        self.stager.stage,
                        workspace,
                        upload.file,
                        extension_of(upload.filename),
                        ordinal=index if ordered else None,
                        display_name=upload.filename,
                        fallback_extension=_FALLBACK_EXTENSIONS[spec.media],
                    )
                    assets.append(asset)
                job.advance(JobState.STAGED)

                job.advance(JobState.TRANSFORMING)
                artifact = await self.invoker.invoke(spec, assets, workspace, cancel)

                job.advance(JobState.STREAMING)
                response = self.streamer.stream(
                    artifact, on_complete=partial(self._finish, job, log, workspace, started)
                )
                workspace.transfer()
        except BaseException as exc:
            self._fail(job, log, exc)
            raise

        log.info("job.streaming", artifact=artifact.download_name, media_type=artifact.media_type)
        return response

    def _finish(self, job: JobContext, log, workspace: Workspace, started: float, succeeded: bool) -> None:
        self.workspaces.destroy(workspace)
        job.advance(JobState.DONE if succeeded else JobState.FAILED)
        log.info(
            "job.finished",
            state=job.state.value,
            elapsed_seconds=round(time.perf_counter() - started, 3),
        )

    @staticmethod
    def _fail(job: JobContext, log, exc: BaseException) -> None:
        if job.finished:
            return
        from_state = job.state
        job.advance(JobState.FAILED)
        kind = getattr(exc, "kind", type(exc).__name__)
        log.warning("job.failed", from_state=from_state.value, kind=kind, error=str(exc))


def _first_error(exc: SpecValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message
