"""
Health Check Endpoint
"""

from fastapi import APIRouter, Depends

from priorauth import __version__
from priorauth.api.responses import get_context
from priorauth.context import ServerContext

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(context: ServerContext = Depends(get_context)):
    """Liveness check with the active store backend."""
    return {
        "status": "healthy",
        "version": __version__,
        "store": context.store.name,
    }
