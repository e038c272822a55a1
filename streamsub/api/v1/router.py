"""Version 1 API router."""
from fastapi import APIRouter

from streamsub.api.v1.endpoints import admin, plans, subscriptions

api_router = APIRouter()
api_router.include_router(plans.router)
api_router.include_router(subscriptions.router)
api_router.include_router(admin.router)
