from fastapi import APIRouter

from media_tools.api.audio_routes import router as audio_router
from media_tools.api.image_routes import router as image_router
from media_tools.api.pdf_routes import router as pdf_router
from media_tools.api.video_routes import router as video_router

router = APIRouter()
router.include_router(audio_router)
router.include_router(image_router)
router.include_router(pdf_router)
router.include_router(video_router)

__all__ = ["router"]
