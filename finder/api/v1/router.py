"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from finder.api.v1 import finder

api_router = APIRouter()

api_router.include_router(finder.router, prefix="/finder", tags=["finder"])
