"""
Repository for Deployment entity database operations.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, select

from deployer.models.deployment import Deployment, DeploymentLog
from deployer.repositories.base import BaseRepository


class DeploymentRepository(BaseRepository[Deployment]):
    """Repository for Deployment database operations."""

    model = Deployment
    pk = "challenge_id"

    async def list_by_status(
        self,
        status: str,
        updated_before: Optional[datetime] = None,
    ) -> List[Deployment]:
        """
        List deployments in a given status.

        Args:
            status: Status value to match
            updated_before: If set, only deployments last updated before this time

        Returns:
            Matching deployments
        """
        stmt = select(Deployment).where(Deployment.status == status)
        if updated_before is not None:
            stmt = stmt.where(Deployment.updated_at < updated_before)
        result = await self.db.execute(stmt.order_by(Deployment.updated_at))
        return list(result.scalars().all())

    async def append_logs(self, challenge_id: UUID, lines: List[str]) -> None:
        """
        Append log lines to a deployment.

        Lines are added in one transaction in the order given, so their
        autoincrement ids preserve emission order.

        Args:
            challenge_id: Owning challenge
            lines: Lines to append
        """
        if not lines:
            return
        now = datetime.utcnow()
        self.db.add_all(
            [DeploymentLog(challenge_id=challenge_id, line=line, created_at=now) for line in lines]
        )
        await self.db.commit()

    async def get_logs(self, challenge_id: UUID) -> List[str]:
        """Return all log lines of a deployment in insertion order."""
        result = await self.db.execute(
            select(DeploymentLog.line)
            .where(DeploymentLog.challenge_id == challenge_id)
            .order_by(DeploymentLog.id)
        )
        return list(result.scalars().all())

    async def delete_with_logs(self, challenge_id: UUID) -> bool:
        """
        Delete a deployment and all of its log lines.

        Returns:
            True if a deployment was deleted, False if none existed
        """
        deployment = await self.get_by_id(challenge_id)
        if not deployment:
            return False
        await self.db.execute(
            delete(DeploymentLog).where(DeploymentLog.challenge_id == challenge_id)
        )
        return await self.delete(deployment)
