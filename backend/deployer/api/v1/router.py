"""
API v1 router that includes all endpoint routers.
"""
from fastapi import APIRouter

from deployer.api.v1.endpoints import (
    deployments,
    ports,
)

# Create main API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    deployments.router,
    prefix="/challenges",
    tags=["deployments"],
)

api_router.include_router(
    ports.router,
    prefix="/ports",
    tags=["ports"],
)
