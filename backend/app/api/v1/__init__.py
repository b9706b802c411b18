from fastapi import APIRouter

# Aggregate all v1 routers here
from .routers import documents, ingestion, system

api_router = APIRouter()
api_router.include_router(documents.router)
api_router.include_router(ingestion.router)
api_router.include_router(system.router)

__all__ = ["api_router"]
