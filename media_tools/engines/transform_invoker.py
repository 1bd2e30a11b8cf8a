from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

from starlette.concurrency import run_in_threadpool

from media_tools.config import Settings
from media_tools.engines import ffmpeg_commands, image_engine, pdf_engine
from media_tools.errors import (
    JobCancelled,
    MediaToolsError,
    ServiceBusy,
    TransformFailed,
    TransformTimeout,
)
from media_tools.models.job_contract import Artifact, ConversionSpec, StagedAsset, Workspace
from media_tools.utils.filesystem import display_stem

logger = logging.getLogger(__name__)

T = TypeVar("T")

TERMINATE_GRACE_SECONDS = 5.0
CANCEL_POLL_SECONDS = 0.5
DIAGNOSTIC_TAIL_CHARS = 500

_held_work: ContextVar[list[asyncio.Future] | None] = ContextVar("held_transform_work", default=None)


def resolve_ffmpeg_binary(settings: Settings) -> str:
    if settings.ffmpeg_binary:
        return settings.ffmpeg_binary
    from moviepy.config import FFMPEG_BINARY

    return FFMPEG_BINARY


class CancellationToken:
    """Cooperative cancellation flag, optionally backed by an async probe such as a disconnect check."""

    def __init__(self, probe: Callable[[], Awaitable[bool]] | None = None) -> None:
        self._probe = probe
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    async def is_cancelled(self) -> bool:
        if not self._cancelled and self._probe is not None:
            self._cancelled = bool(await self._probe())
        return self._cancelled


class TransformLimiter:
    """Caps simultaneous transformations; callers wait up to ``queue_timeout`` for a slot.

    Work abandoned by its caller (a timed-out worker thread) still counts
    against the ceiling: see :meth:`hold_until`.
    """

    def __init__(self, max_concurrent: int, queue_timeout: float) -> None:
        self.max_concurrent = max(1, max_concurrent)
        self.queue_timeout = queue_timeout
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    def hold_until(self, work: asyncio.Future) -> None:
        """Keep the caller's current slot occupied until ``work`` finishes."""
        held = _held_work.get()
        if held is not None:
            held.append(work)

    def _release_after(self, pending: list[asyncio.Future]) -> None:
        logger.info("transform.slot_held pending=%d", len(pending))
        asyncio.gather(*pending, return_exceptions=True).add_done_callback(
            lambda _: self._semaphore.release()
        )

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        if self.queue_timeout <= 0:
            if self._semaphore.locked():
                raise ServiceBusy("Too many transformations in progress, try again later")
            await self._semaphore.acquire()
        else:
            try:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=self.queue_timeout)
            except asyncio.TimeoutError as exc:
                raise ServiceBusy("Too many transformations in progress, try again later") from exc
        held: list[asyncio.Future] = []
        token = _held_work.set(held)
        try:
            yield
        finally:
            _held_work.reset(token)
            pending = [work for work in held if not work.done()]
            if pending:
                self._release_after(pending)
            else:
                self._semaphore.release()


class TransformInvoker:
    def __init__(self, settings: Settings, limiter: TransformLimiter | None = None) -> None:
        self.settings = settings
        self.limiter = limiter or TransformLimiter(
            settings.max_concurrent_transforms, settings.queue_timeout_seconds
        )
        self._ffmpeg_binary: str | None = None

    @property
    def ffmpeg_binary(self) -> str:
        if self._ffmpeg_binary is None:
            self._ffmpeg_binary = resolve_ffmpeg_binary(self.settings)
        return self._ffmpeg_binary

    async def invoke(
        self,
        spec: ConversionSpec,
        inputs: list[StagedAsset],
        workspace: Workspace,
        cancel: CancellationToken | None = None,
    ) -> Artifact:
        if not inputs:
            raise TransformFailed("Nothing to transform", "no staged inputs")

        async with self.limiter.slot():
            key = (spec.media, spec.operation)
            if key == ("audio", "compress"):
                return await self._compress_audio(spec, inputs[0], workspace, cancel)
            if key == ("audio", "merge"):
                return await self._merge_audio(inputs, workspace, cancel)
            if key == ("image", "convert"):
                return await self._convert_image(spec, inputs[0], workspace)
            if key == ("image", "resize"):
                return await self._resize_image(spec, inputs[0], workspace)
            if key == ("image", "watermark"):
                return await self._watermark_image(spec, inputs[0], workspace)
            if key == ("pdf", "merge"):
                return await self._merge_pdfs(inputs, workspace)
            if key == ("video", "transcode"):
                return await self._transcode_video(spec, inputs[0], workspace, cancel)
        raise TransformFailed("Unsupported operation", f"{spec.media}/{spec.operation}")

    async def _compress_audio(
        self, spec: ConversionSpec, source: StagedAsset, workspace: Workspace, cancel: CancellationToken | None
    ) -> Artifact:
        output = workspace.path / "compressed.mp3"
        argv = ffmpeg_commands.compress_audio_command(self.ffmpeg_binary, source.path, output, spec.quality)
        await self.run_process(argv, workspace=workspace, label="Audio compression", cancel=cancel)
        name = display_stem(source.display_name, "audio")
        return Artifact(path=output, media_type="audio/mpeg", download_name=f"compressed-{name}.mp3")

    async def _merge_audio(
        self, inputs: Sequence[StagedAsset], workspace: Workspace, cancel: CancellationToken | None
    ) -> Artifact:
        ordered = sorted(inputs, key=lambda asset: asset.ordinal or 0)
        concat_list = workspace.path / "concat.txt"
        concat_list.write_text(ffmpeg_commands.build_concat_list([a.path for a in ordered]), encoding="utf-8")
        output = workspace.path / "merged.mp3"
        argv = ffmpeg_commands.merge_audio_command(self.ffmpeg_binary, concat_list, output)
        await self.run_process(argv, workspace=workspace, label="Audio merge", cancel=cancel)
        return Artifact(path=output, media_type="audio/mpeg", download_name="merged-audio.mp3")

    async def _convert_image(self, spec: ConversionSpec, source: StagedAsset, workspace: Workspace) -> Artifact:
        fmt = image_engine.normalize_image_format(spec.output_format)
        output = workspace.path / f"converted.{fmt}"
        await self.run_in_process(
            image_engine.convert_image, source.path, output, fmt, workspace=workspace, label="Image conversion"
        )
        return Artifact(path=output, media_type=image_engine.image_media_type(fmt), download_name=output.name)

    async def _resize_image(self, spec: ConversionSpec, source: StagedAsset, workspace: Workspace) -> Artifact:
        fmt = image_engine.normalize_image_format(spec.output_format)
        output = workspace.path / f"resized.{fmt}"
        await self.run_in_process(
            image_engine.resize_image,
            source.path,
            output,
            spec.width,
            spec.height,
            fmt,
            workspace=workspace,
            label="Resize",
        )
        return Artifact(path=output, media_type=image_engine.image_media_type(fmt), download_name=output.name)

    async def _watermark_image(self, spec: ConversionSpec, source: StagedAsset, workspace: Workspace) -> Artifact:
        output = workspace.path / "watermarked.png"
        await self.run_in_process(
            image_engine.watermark_image, source.path, output, spec.watermark, workspace=workspace, label="Watermark"
        )
        return Artifact(path=output, media_type="image/png", download_name=output.name)

    async def _merge_pdfs(self, inputs: Sequence[StagedAsset], workspace: Workspace) -> Artifact:
        ordered = sorted(inputs, key=lambda asset: asset.ordinal or 0)
        output = workspace.path / "merged.pdf"
        await self.run_in_process(
            pdf_engine.merge_pdfs, [a.path for a in ordered], output, workspace=workspace, label="PDF merge"
        )
        return Artifact(path=output, media_type="application/pdf", download_name=output.name)

    async def _transcode_video(
        self, spec: ConversionSpec, source: StagedAsset, workspace: Workspace, cancel: CancellationToken | None
    ) -> Artifact:
        fmt = spec.output_format or "mp4"
        output = workspace.path / f"output.{fmt}"
        resolution = ffmpeg_commands.parse_resolution(spec.resolution)
        argv = ffmpeg_commands.transcode_video_command(self.ffmpeg_binary, source.path, output, fmt, resolution)
        await self.run_process(argv, workspace=workspace, label="Video processing", cancel=cancel)
        name = Path(display_stem(source.display_name, "video")).stem or "video"
        return Artifact(
            path=output,
            media_type=ffmpeg_commands.VIDEO_MEDIA_TYPES.get(fmt, "application/octet-stream"),
            download_name=f"{name}.{fmt}",
        )

    async def run_process(
        self,
        argv: list[str],
        *,
        workspace: Workspace,
        label: str,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> None:
        """Run ``argv`` without a shell, bounded by ``timeout`` and ``cancel``."""
        timeout = self.settings.transform_timeout_seconds if timeout is None else timeout
        logger.info("transform.exec %s label=%s workspace=%s", Path(argv[0]).name, label, workspace.name)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                cwd=workspace.path,
            )
        except FileNotFoundError as exc:
            raise TransformFailed(f"{label} failed", f"{Path(argv[0]).name} executable not found") from exc
        except OSError as exc:
            raise TransformFailed(f"{label} failed", exc.strerror or str(exc)) from exc

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        communicate = asyncio.ensure_future(process.communicate())
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise TransformTimeout(f"{label} timed out after {timeout:g}s")
                done, _ = await asyncio.wait({communicate}, timeout=min(CANCEL_POLL_SECONDS, remaining))
                if done:
                    break
                if cancel is not None and await cancel.is_cancelled():
                    raise JobCancelled(f"{label} cancelled: client disconnected")
        except BaseException:
            await _terminate(process)
            communicate.cancel()
            raise

        _, stderr = communicate.result()
        if process.returncode != 0:
            text = (stderr or b"").decode("utf-8", errors="replace").strip()
            diagnostics = scrub_paths(text[-DIAGNOSTIC_TAIL_CHARS:], workspace)
            logger.warning("transform.failed label=%s code=%s", label, process.returncode)
            raise TransformFailed(f"{label} failed", diagnostics or f"exit code {process.returncode}")

    async def run_in_process(
        self,
        func: Callable[..., T],
        *args: Any,
        workspace: Workspace,
        label: str,
    ) -> T:
        """Run a library-backed adapter in the threadpool under the transform timeout.

        A timed-out thread cannot be interrupted. Until it returns it keeps
        holding its concurrency slot and its workspace, so neither is reused
        or removed underneath it.
        """
        timeout = self.settings.transform_timeout_seconds
        work = asyncio.ensure_future(run_in_threadpool(func, *args))
        try:
            return await asyncio.wait_for(asyncio.shield(work), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TransformTimeout(f"{label} timed out after {timeout:g}s") from exc
        except MediaToolsError:
            raise
        except Exception as exc:
            raise TransformFailed(f"{label} failed", scrub_paths(str(exc), workspace)) from exc
        finally:
            if not work.done():
                self.limiter.hold_until(work)
                workspace.hold_until(work)
                work.add_done_callback(partial(_abandoned_work_finished, label))


def _abandoned_work_finished(label: str, work: asyncio.Future) -> None:
    if work.cancelled():
        return
    error = work.exception()
    logger.info("transform.abandoned_finished label=%s error=%s", label, error)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("transform.kill pid=%s", process.pid)
        process.kill()
        await process.wait()


def scrub_paths(message: str, workspace: Workspace) -> str:
    """Strip host directories so diagnostics only mention files relative to the workspace."""
    for root in {str(workspace.path.resolve()), str(workspace.path)}:
        message = message.replace(root + "/", "").replace(root, ".")
    return message
