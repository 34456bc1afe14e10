"""API v1 module."""

from fastapi import APIRouter

from .endpoints import models, providers, readings

api = APIRouter()

api.include_router(readings.router, prefix="/readings", tags=["readings"])
api.include_router(models.router, prefix="/models", tags=["models"])
api.include_router(providers.router, prefix="/providers", tags=["providers"])
