"""
Shared types for the deployment services.

Defines the records passed between the orchestrator and its collaborators
and the storage interface the orchestrator persists through.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID


class DeploymentStatus(str, Enum):
    """Status of a challenge deployment."""
    NOT_DEPLOYED = "not_deployed"
    BUILDING = "building"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass
class ChallengeSpec:
    """Snapshot of the challenge fields needed to deploy it."""

    id: UUID
    title: str
    github_url: Optional[str]
    deployable: bool
    port: Optional[int]
    internal_port: Optional[int]


@dataclass
class DeploymentRecord:
    """Persisted state of a challenge's running instance."""

    challenge_id: UUID
    status: DeploymentStatus = DeploymentStatus.NOT_DEPLOYED
    github_url: Optional[str] = None
    port: Optional[int] = None
    internal_port: Optional[int] = None
    container_id: Optional[str] = None
    storage_path: Optional[str] = None
    deployed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class DeployResult:
    """Outcome of a successful deploy."""

    status: DeploymentStatus
    port: int
    container_id: str
    logs: List[str] = field(default_factory=list)


@dataclass
class StopResult:
    """Outcome of a stop."""

    status: DeploymentStatus


@dataclass
class ContainerStats:
    """Live utilisation of a container, best effort."""

    cpu: Optional[str] = None
    memory: Optional[str] = None
    network: Optional[str] = None
    error: Optional[str] = None


class DeploymentStore(ABC):
    """
    Persistence boundary of the orchestrator.

    Implementations must keep log lines in insertion order and never
    rewrite or drop them except when the whole record is deleted.
    """

    @abstractmethod
    async def get_challenge(self, challenge_id: UUID) -> ChallengeSpec:
        """
        Load a challenge.

        Raises:
            ChallengeNotFoundError: If the challenge does not exist
        """
        pass

    @abstractmethod
    async def get_record(self, challenge_id: UUID) -> Optional[DeploymentRecord]:
        """Load the deployment record of a challenge, if any."""
        pass

    @abstractmethod
    async def save_record(self, record: DeploymentRecord) -> DeploymentRecord:
        """Insert or update a deployment record."""
        pass

    @abstractmethod
    async def delete_record(self, challenge_id: UUID) -> bool:
        """Delete a record and its logs. Returns False if there was none."""
        pass

    @abstractmethod
    async def append_logs(self, challenge_id: UUID, lines: List[str]) -> None:
        """Append log lines in the given order."""
        pass

    @abstractmethod
    async def get_logs(self, challenge_id: UUID) -> List[str]:
        """Return all log lines in insertion order."""
        pass

    @abstractmethod
    async def list_records_by_status(
        self,
        status: DeploymentStatus,
        updated_before: Optional[datetime] = None,
    ) -> List[DeploymentRecord]:
        """List records in a status, optionally only those not updated since a cutoff."""
        pass
