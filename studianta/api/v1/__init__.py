"""Studianta - API v1 Router."""
from fastapi import APIRouter

from studianta.api.v1.ai import router as ai_router
from studianta.api.v1.exam import router as exam_router

api_router = APIRouter()

api_router.include_router(ai_router)
api_router.include_router(exam_router)
