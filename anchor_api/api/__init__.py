from fastapi import APIRouter

from anchor_api.api.v1 import links, metadata, users

api_router = APIRouter(prefix="/api")
api_router.include_router(links.router)
api_router.include_router(metadata.router)
api_router.include_router(users.router)

__all__ = ["api_router"]
