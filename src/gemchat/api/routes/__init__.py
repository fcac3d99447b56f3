from fastapi import APIRouter

from .generate import router as generate_router
from .models import router as models_router

router = APIRouter()
router.include_router(generate_router)
router.include_router(models_router)

__all__ = ["router"]
