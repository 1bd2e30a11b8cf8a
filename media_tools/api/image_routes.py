from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile

from media_tools.api.dependencies import get_pipeline
from media_tools.pipeline.job_pipeline import JobPipeline

router = APIRouter(prefix="/image", tags=["image"])


@router.post("/convert")
async def convert_image(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    image: Annotated[UploadFile | None, File()] = None,
    format: Annotated[str | None, Form()] = None,
):
    return await pipeline.convert_image(image, format)


@router.post("/watermark")
async def watermark_image(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    image: Annotated[UploadFile | None, File()] = None,
    text: Annotated[str | None, Form()] = None,
    font_size: Annotated[str | None, Form(alias="fontSize")] = None,
    color: Annotated[str | None, Form()] = None,
    opacity: Annotated[str | None, Form()] = None,
    position: Annotated[str | None, Form()] = None,
):
    return await pipeline.watermark_image(image, text, font_size, color, opacity, position)


@router.post("/resize")
async def resize_image(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    image: Annotated[UploadFile | None, File()] = None,
    width: Annotated[str | None, Form()] = None,
    height: Annotated[str | None, Form()] = None,
    format: Annotated[str | None, Form()] = None,
):
    return await pipeline.resize_image(image, width, height, format)
