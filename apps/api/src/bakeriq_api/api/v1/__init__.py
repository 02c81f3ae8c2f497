from fastapi import APIRouter

from .endpoints import health, lifecycle

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(lifecycle.router)
