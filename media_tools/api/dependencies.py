from fastapi import Request

from media_tools.engines.transform_invoker import CancellationToken
from media_tools.pipeline.job_pipeline import JobPipeline


def get_pipeline(request: Request) -> JobPipeline:
    return request.app.state.pipeline


def get_cancellation(request: Request) -> CancellationToken:
    return CancellationToken(request.is_disconnected)
