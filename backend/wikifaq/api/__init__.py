"""
API routes initialization.

Aggregates all API routers into a single router for the main application.
"""

from fastapi import APIRouter

from wikifaq.api.routes import pipeline

api_router = APIRouter()

api_router.include_router(pipeline.router)
