"""
Shared FastAPI dependencies.
"""
from fastapi import Request

from deployer.services.deployment.orchestrator import DeploymentOrchestrator


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    """Orchestrator created at application startup."""
    return request.app.state.orchestrator
