"""API router: aggregates all endpoints."""

from fastapi import APIRouter

from privacy_reader.api import fetch_page, health, root
from privacy_reader.api.policy_analyzer.router import router as policy_router

api_router = APIRouter()

api_router.include_router(root.router)
api_router.include_router(health.router)
api_router.include_router(fetch_page.router)
api_router.include_router(policy_router)
