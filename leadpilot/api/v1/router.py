"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from leadpilot.api.v1 import automation, filters, generate, health, listings

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(filters.router, prefix="/prospecting/filters", tags=["prospecting"])
api_v1_router.include_router(automation.router, prefix="/prospecting/automate", tags=["prospecting"])
api_v1_router.include_router(listings.router, prefix="/prospecting/listings", tags=["prospecting"])
api_v1_router.include_router(generate.router, prefix="/generate", tags=["generate"])
