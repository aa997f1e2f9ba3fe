"""
Repository for Challenge entity database operations.
"""
from uuid import UUID

from deployer.core.exceptions import ChallengeNotFoundError
from deployer.models.challenge import Challenge
from deployer.repositories.base import BaseRepository


class ChallengeRepository(BaseRepository[Challenge]):
    """Repository for Challenge database operations."""

    model = Challenge

    async def get_by_id_or_raise(self, id: UUID) -> Challenge:
        """Get a challenge by ID, raising exception if not found."""
        challenge = await self.get_by_id(id)
        if not challenge:
            raise ChallengeNotFoundError(str(id))
        return challenge
