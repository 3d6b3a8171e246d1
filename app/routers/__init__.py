from fastapi import APIRouter

from . import auth, health


def get_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(health.router)
    router.include_router(auth.router)
    return router
