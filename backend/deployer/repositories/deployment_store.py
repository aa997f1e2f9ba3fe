"""
SQLAlchemy-backed deployment store.

Each call opens its own short session so that log flushes from the
process executor never share a transaction with status updates.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deployer.models.deployment import Deployment
from deployer.repositories.challenge_repository import ChallengeRepository
from deployer.repositories.deployment_repository import DeploymentRepository
from deployer.services.deployment.base import (
    ChallengeSpec,
    DeploymentRecord,
    DeploymentStatus,
    DeploymentStore,
)


def _to_record(deployment: Deployment) -> DeploymentRecord:
    return DeploymentRecord(
        challenge_id=deployment.challenge_id,
        status=DeploymentStatus(deployment.status),
        github_url=deployment.github_url,
        port=deployment.port,
        internal_port=deployment.internal_port,
        container_id=deployment.container_id,
        storage_path=deployment.storage_path,
        deployed_at=deployment.deployed_at,
        updated_at=deployment.updated_at,
    )


class SqlDeploymentStore(DeploymentStore):
    """DeploymentStore over the challenges/deployments tables."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get_challenge(self, challenge_id: UUID) -> ChallengeSpec:
        async with self.session_maker() as db:
            challenge = await ChallengeRepository(db).get_by_id_or_raise(challenge_id)
            return ChallengeSpec(
                id=challenge.id,
                title=challenge.title,
                github_url=challenge.github_url,
                deployable=challenge.deployable,
                port=challenge.port,
                internal_port=challenge.internal_port,
            )

    async def get_record(self, challenge_id: UUID) -> Optional[DeploymentRecord]:
        async with self.session_maker() as db:
            deployment = await DeploymentRepository(db).get_by_id(challenge_id)
            return _to_record(deployment) if deployment else None

    async def save_record(self, record: DeploymentRecord) -> DeploymentRecord:
        record.updated_at = datetime.utcnow()
        async with self.session_maker() as db:
            repo = DeploymentRepository(db)
            deployment = await repo.get_by_id(record.challenge_id)
            if deployment is None:
                deployment = Deployment(challenge_id=record.challenge_id)
                db.add(deployment)
            deployment.status = record.status.value
            deployment.github_url = record.github_url
            deployment.port = record.port
            deployment.internal_port = record.internal_port
            deployment.container_id = record.container_id
            deployment.storage_path = record.storage_path
            deployment.deployed_at = record.deployed_at
            deployment.updated_at = record.updated_at
            deployment = await repo.update(deployment)
            return _to_record(deployment)

    async def delete_record(self, challenge_id: UUID) -> bool:
        async with self.session_maker() as db:
            return await DeploymentRepository(db).delete_with_logs(challenge_id)

    async def append_logs(self, challenge_id: UUID, lines: List[str]) -> None:
        async with self.session_maker() as db:
            await DeploymentRepository(db).append_logs(challenge_id, lines)

    async def get_logs(self, challenge_id: UUID) -> List[str]:
        async with self.session_maker() as db:
            return await DeploymentRepository(db).get_logs(challenge_id)

    async def list_records_by_status(
        self,
        status: DeploymentStatus,
        updated_before: Optional[datetime] = None,
    ) -> List[DeploymentRecord]:
        async with self.session_maker() as db:
            deployments = await DeploymentRepository(db).list_by_status(status.value, updated_before)
            return [_to_record(d) for d in deployments]
