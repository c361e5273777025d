"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from callshield.api.v1.endpoints import (
    calls,
    numbers,
    providers,
    sessions,
    health,
)

api_router = APIRouter()

api_router.include_router(calls.router)
api_router.include_router(numbers.router)
api_router.include_router(providers.router)
api_router.include_router(sessions.router)
api_router.include_router(health.router)
