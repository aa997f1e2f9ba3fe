"""
API endpoints for challenge deployments.

Uses the DeploymentOrchestrator for all state changes and domain exceptions
for error handling.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from deployer.api.dependencies import get_orchestrator
from deployer.core.security import Caller, require_admin_for, verify_api_key
from deployer.schemas.deployment import (
    ContainerStatsResponse,
    DeploymentLogsResponse,
    DeploymentStatusResponse,
    DeployRequest,
    DeployResponse,
    StopResponse,
    TeardownResponse,
)
from deployer.services.deployment.orchestrator import DeploymentOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{challenge_id}/deploy", response_model=DeployResponse)
async def deploy_challenge(
    challenge_id: UUID,
    options: Optional[DeployRequest] = Body(None),
    force: bool = Query(False, description="Replace an existing working directory (admin only)"),
    auto_port: bool = Query(False, description="Use the first free port if the configured one is busy"),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(verify_api_key),
) -> DeployResponse:
    """
    Clone, build and run a challenge.

    The request returns once the container is running or the deployment
    has failed; logs are persisted as they are produced and can be polled
    from the logs endpoint meanwhile.

    Raises:
        ChallengeNotFoundError: If challenge not found (404)
        PortConflictError: If the host port is taken (409, with available_ports)
        DirectoryExistsError: If a previous working tree exists (409)
        DeploymentInProgressError: If the challenge is already being deployed (409)
        DeploymentExecutionError: If clone, build or run fails (500)
    """
    if options is not None:
        force = force or options.force
        auto_port = auto_port or options.auto_port

    logger.info(f"{caller.name} requested deploy of challenge {challenge_id} (force={force}, auto_port={auto_port})")
    result = await orchestrator.deploy(
        challenge_id,
        force=force,
        auto_port=auto_port,
        is_admin=caller.is_admin,
    )
    return DeployResponse.from_result(result)


@router.post("/{challenge_id}/stop", response_model=StopResponse)
async def stop_challenge(
    challenge_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(require_admin_for("stop challenge")),
) -> StopResponse:
    """
    Stop a running challenge. Requires admin role.

    Raises:
        ChallengeNotFoundError: If challenge not found (404)
        DeploymentNotActiveError: If the challenge is not deployed (400)
    """
    result = await orchestrator.stop(challenge_id)
    return StopResponse(status=result.status)


@router.get("/{challenge_id}/deployment", response_model=DeploymentStatusResponse)
async def get_deployment(
    challenge_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(verify_api_key),
) -> DeploymentStatusResponse:
    """Get the deployment record of a challenge."""
    record = await orchestrator.get_status(challenge_id)
    return DeploymentStatusResponse.from_record(record)


@router.delete("/{challenge_id}/deployment", response_model=TeardownResponse)
async def delete_deployment(
    challenge_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(require_admin_for("delete deployment")),
) -> TeardownResponse:
    """
    Remove a challenge's container, image, working tree and deployment record.
    Requires admin role.
    """
    deleted = await orchestrator.teardown(challenge_id)
    return TeardownResponse(challenge_id=challenge_id, deleted=deleted)


@router.get("/{challenge_id}/logs", response_model=DeploymentLogsResponse)
async def get_deployment_logs(
    challenge_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(verify_api_key),
) -> DeploymentLogsResponse:
    """Get all deployment log lines of a challenge, oldest first."""
    logs = await orchestrator.get_logs(challenge_id)
    return DeploymentLogsResponse(challenge_id=challenge_id, logs=logs)


@router.get("/{challenge_id}/stats", response_model=ContainerStatsResponse, status_code=status.HTTP_200_OK)
async def get_container_stats(
    challenge_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(verify_api_key),
) -> ContainerStatsResponse:
    """
    Get live CPU, memory and network usage of a challenge's container.

    Raises:
        NoActiveContainerError: If the challenge is not running (404)
    """
    stats = await orchestrator.get_stats(challenge_id)
    return ContainerStatsResponse.from_stats(stats)
