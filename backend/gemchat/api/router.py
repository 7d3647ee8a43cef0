"""Central API router that aggregates all route modules."""

from fastapi import APIRouter

from gemchat.api.health import router as health_router
from gemchat.api.prompts import router as prompts_router
from gemchat.api.sessions import router as sessions_router

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
api_router.include_router(prompts_router, prefix="/prompts", tags=["prompts"])
