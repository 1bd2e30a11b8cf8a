from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile

from media_tools.api.dependencies import get_cancellation, get_pipeline
from media_tools.engines.transform_invoker import CancellationToken
from media_tools.pipeline.job_pipeline import JobPipeline

router = APIRouter(prefix="/audio", tags=["audio"])


@router.post("/compress")
async def compress_audio(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    cancel: Annotated[CancellationToken, Depends(get_cancellation)],
    audio: Annotated[UploadFile | None, File()] = None,
    quality: Annotated[str | None, Form()] = None,
):
    return await pipeline.compress_audio(audio, quality, cancel)


@router.post("/merge")
async def merge_audio(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    cancel: Annotated[CancellationToken, Depends(get_cancellation)],
    audios: Annotated[list[UploadFile] | None, File()] = None,
):
    return await pipeline.merge_audio(audios, cancel)
