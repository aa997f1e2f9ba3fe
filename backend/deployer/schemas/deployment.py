"""
Pydantic schemas for challenge deployments.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from deployer.services.deployment.base import (
    ContainerStats,
    DeploymentRecord,
    DeploymentStatus,
    DeployResult,
)


class DeployRequest(BaseModel):
    """Options of a deploy request; every field can also be given as a query parameter."""
    force: bool = False
    auto_port: bool = False


class DeployResponse(BaseModel):
    """Schema for a successful deploy."""
    status: DeploymentStatus
    port: int
    container_id: str
    logs: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: DeployResult) -> "DeployResponse":
        return cls(
            status=result.status,
            port=result.port,
            container_id=result.container_id,
            logs=result.logs,
        )


class StopResponse(BaseModel):
    """Schema for a successful stop."""
    status: DeploymentStatus
    message: str = "Container stopped"


class DeploymentStatusResponse(BaseModel):
    """Schema for the deployment record of a challenge."""
    challenge_id: UUID
    status: DeploymentStatus
    github_url: Optional[str] = None
    port: Optional[int] = None
    internal_port: Optional[int] = None
    container_id: Optional[str] = None
    storage_path: Optional[str] = None
    deployed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: DeploymentRecord) -> "DeploymentStatusResponse":
        """Convert a DeploymentRecord to response schema."""
        return cls(
            challenge_id=record.challenge_id,
            status=record.status,
            github_url=record.github_url,
            port=record.port,
            internal_port=record.internal_port,
            container_id=record.container_id,
            storage_path=record.storage_path,
            deployed_at=record.deployed_at,
            updated_at=record.updated_at,
        )


class DeploymentLogsResponse(BaseModel):
    """Deployment log lines of a challenge, oldest first."""
    challenge_id: UUID
    logs: List[str]


class ContainerStatsResponse(BaseModel):
    """Live container utilisation; ``error`` is set when output could not be parsed."""
    cpu: Optional[str] = None
    memory: Optional[str] = None
    network: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_stats(cls, stats: ContainerStats) -> "ContainerStatsResponse":
        return cls(cpu=stats.cpu, memory=stats.memory, network=stats.network, error=stats.error)


class TeardownResponse(BaseModel):
    """Outcome of removing a challenge's deployment."""
    challenge_id: UUID
    deleted: bool


class AvailablePortsResponse(BaseModel):
    """Free host ports in the requested range."""
    start: int
    end: int
    available_ports: List[int]
