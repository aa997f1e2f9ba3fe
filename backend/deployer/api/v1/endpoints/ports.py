"""
API endpoints for host port discovery.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from deployer.api.dependencies import get_orchestrator
from deployer.core.config import settings
from deployer.core.security import Caller, verify_api_key
from deployer.schemas.deployment import AvailablePortsResponse
from deployer.services.deployment.orchestrator import DeploymentOrchestrator

router = APIRouter()


@router.get("/available", response_model=AvailablePortsResponse)
async def list_available_ports(
    start: Optional[int] = Query(None, description="First port of the range"),
    end: Optional[int] = Query(None, description="Last port of the range"),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(verify_api_key),
) -> AvailablePortsResponse:
    """
    List up to ten free host ports.

    Raises:
        InvalidPortRangeError: If the range is invalid (400)
        PortScanError: If the host ports could not be listed (500)
    """
    start = settings.PORT_RANGE_START if start is None else start
    end = settings.PORT_RANGE_END if end is None else end
    ports = await orchestrator.list_available_ports(start, end)
    return AvailablePortsResponse(start=start, end=end, available_ports=ports)
