from fastapi import APIRouter

from bidsmart.api.v1.endpoints import callbacks, documents, projects

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(projects.router, prefix="/projects", tags=["Projects"])
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(callbacks.router, prefix="/callbacks", tags=["Callbacks"])

__all__ = ["api_router"]
