"""
API v1 routes.
"""

from fastapi import APIRouter

from history_engine.api.v1 import curriculum, progress, purchases, quiz

router = APIRouter()

router.include_router(progress.router, prefix="/users/{user_id}/events", tags=["Progress"])
router.include_router(quiz.router, prefix="/users/{user_id}/events", tags=["Quiz"])
router.include_router(purchases.router, prefix="/users/{user_id}/purchases", tags=["Purchases"])
router.include_router(curriculum.router, tags=["Curriculum"])
