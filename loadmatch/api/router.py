from fastapi import APIRouter

from loadmatch.routers import health, matching

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(matching.router, prefix="/matching", tags=["Load Matching"])
