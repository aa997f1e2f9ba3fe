"""
Deployment status transitions.

    not_deployed --deploy--> building --activate--> active --stop--> not_deployed
                                 |                     |
                                 +--fail--> failed     +--deploy (forced redeploy)--> building
                                             |
                                             +--deploy (retry)--> building
"""
from dataclasses import dataclass
from typing import List

from deployer.core.exceptions import InvalidTransitionError
from deployer.services.deployment.base import DeploymentRecord, DeploymentStatus


@dataclass(frozen=True)
class Transition:
    from_state: DeploymentStatus
    to_state: DeploymentStatus
    action: str


class DeploymentStateMachine:
    """Validates and applies status changes to deployment records."""

    TRANSITIONS: List[Transition] = [
        Transition(DeploymentStatus.NOT_DEPLOYED, DeploymentStatus.BUILDING, "deploy"),
        Transition(DeploymentStatus.FAILED, DeploymentStatus.BUILDING, "deploy"),
        Transition(DeploymentStatus.ACTIVE, DeploymentStatus.BUILDING, "deploy"),
        # Only reachable for a record left behind by a crashed process; a live
        # build always holds the challenge lease.
        Transition(DeploymentStatus.BUILDING, DeploymentStatus.BUILDING, "deploy"),
        Transition(DeploymentStatus.BUILDING, DeploymentStatus.ACTIVE, "activate"),
        Transition(DeploymentStatus.BUILDING, DeploymentStatus.FAILED, "fail"),
        Transition(DeploymentStatus.ACTIVE, DeploymentStatus.NOT_DEPLOYED, "stop"),
    ]

    @classmethod
    def target(cls, current: DeploymentStatus, action: str) -> DeploymentStatus:
        """
        Resolve the status an action leads to.

        Raises:
            InvalidTransitionError: If the action is not allowed from ``current``
        """
        for t in cls.TRANSITIONS:
            if t.from_state == current and t.action == action:
                return t.to_state
        raise InvalidTransitionError(current.value, action)

    @classmethod
    def apply(cls, record: DeploymentRecord, action: str) -> DeploymentRecord:
        """
        Move a record to the status ``action`` leads to.

        A container ID only survives on an active record.
        """
        record.status = cls.target(record.status, action)
        if record.status != DeploymentStatus.ACTIVE:
            record.container_id = None
        return record
