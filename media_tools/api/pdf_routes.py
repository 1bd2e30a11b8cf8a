from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile

from media_tools.api.dependencies import get_pipeline
from media_tools.pipeline.job_pipeline import JobPipeline

router = APIRouter(prefix="/pdf", tags=["pdf"])


@router.post("/merge")
async def merge_pdfs(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    pdfs: Annotated[list[UploadFile] | None, File()] = None,
):
    return await pipeline.merge_pdfs(pdfs)
