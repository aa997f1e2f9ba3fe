"""
Repository layer for database access.
"""
from deployer.repositories.base import BaseRepository
from deployer.repositories.challenge_repository import ChallengeRepository
from deployer.repositories.deployment_repository import DeploymentRepository
from deployer.repositories.deployment_store import SqlDeploymentStore

__all__ = [
    "BaseRepository",
    "ChallengeRepository",
    "DeploymentRepository",
    "SqlDeploymentStore",
]
