"""
Kindred — Main API Router

Aggregates all sub-routers so that ``app.main`` can mount the entire API
surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from app.api import auth, chat

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(chat.router, prefix="/chat", tags=["Chat"])
