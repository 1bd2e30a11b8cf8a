from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile

from media_tools.api.dependencies import get_cancellation, get_pipeline
from media_tools.engines.transform_invoker import CancellationToken
from media_tools.pipeline.job_pipeline import JobPipeline

router = APIRouter(tags=["video"])


@router.post("/video")
async def transcode_video(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    cancel: Annotated[CancellationToken, Depends(get_cancellation)],
    video: Annotated[UploadFile | None, File()] = None,
    format: Annotated[str | None, Form()] = None,
    resolution: Annotated[str | None, Form()] = None,
):
    return await pipeline.transcode_video(video, format, resolution, cancel)
