"""
Tests for per-challenge leases.
"""
from uuid import uuid4

import pytest

from deployer.core.exceptions import DeploymentInProgressError
from deployer.services.deployment.lease import ChallengeLeases


class TestChallengeLeases:
    """Tests for hold and is_held."""

    @pytest.mark.asyncio
    async def test_hold_and_release(self):
        leases = ChallengeLeases()
        challenge_id = uuid4()

        async with leases.hold(challenge_id):
            assert leases.is_held(challenge_id)

        assert not leases.is_held(challenge_id)

    @pytest.mark.asyncio
    async def test_second_holder_rejected(self):
        leases = ChallengeLeases()
        challenge_id = uuid4()

        async with leases.hold(challenge_id):
            with pytest.raises(DeploymentInProgressError):
                async with leases.hold(challenge_id):
                    pass
            # The rejected attempt must not release the first holder's lease
            assert leases.is_held(challenge_id)

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        leases = ChallengeLeases()
        challenge_id = uuid4()

        with pytest.raises(RuntimeError):
            async with leases.hold(challenge_id):
                raise RuntimeError("boom")

        assert not leases.is_held(challenge_id)

    @pytest.mark.asyncio
    async def test_leases_are_per_challenge(self):
        leases = ChallengeLeases()
        first, second = uuid4(), uuid4()

        async with leases.hold(first):
            async with leases.hold(second):
                assert leases.is_held(first) and leases.is_held(second)
