"""
Per-challenge leases.

At most one deploy, stop or teardown runs for a challenge at a time in this
process. Acquisition never waits: a second request is rejected so callers
see a conflict instead of an interleaved deployment.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Set
from uuid import UUID

from deployer.core.exceptions import DeploymentInProgressError

logger = logging.getLogger(__name__)


class ChallengeLeases:
    """Set of challenge IDs with an operation in flight."""

    def __init__(self):
        self._held: Set[UUID] = set()

    def is_held(self, challenge_id: UUID) -> bool:
        return challenge_id in self._held

    @asynccontextmanager
    async def hold(self, challenge_id: UUID) -> AsyncIterator[None]:
        """
        Hold the lease for the duration of the block.

        Raises:
            DeploymentInProgressError: If the lease is already held
        """
        # Check-and-add has no await in between, so it is atomic on the event loop
        if challenge_id in self._held:
            logger.warning(f"Rejected concurrent operation on challenge {challenge_id}")
            raise DeploymentInProgressError(str(challenge_id))
        self._held.add(challenge_id)
        try:
            yield
        finally:
            self._held.discard(challenge_id)
