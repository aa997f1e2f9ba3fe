"""
Challenge deployment services.

This package clones challenge repositories, builds their images and runs
them as containers on the local Docker host.
"""
from deployer.services.deployment.base import (
    ChallengeSpec,
    ContainerStats,
    DeploymentRecord,
    DeploymentStatus,
    DeploymentStore,
    DeployResult,
    StopResult,
)
from deployer.services.deployment.container_manager import ContainerManager
from deployer.services.deployment.lease import ChallengeLeases
from deployer.services.deployment.log_sink import DeploymentLogSink, NullLogSink
from deployer.services.deployment.orchestrator import DeploymentOrchestrator
from deployer.services.deployment.port_allocator import PortAllocator
from deployer.services.deployment.process_executor import ProcessExecutor
from deployer.services.deployment.state_machine import DeploymentStateMachine

__all__ = [
    "ChallengeSpec",
    "ContainerStats",
    "DeploymentRecord",
    "DeploymentStatus",
    "DeploymentStore",
    "DeployResult",
    "StopResult",
    "ContainerManager",
    "ChallengeLeases",
    "DeploymentLogSink",
    "NullLogSink",
    "DeploymentOrchestrator",
    "PortAllocator",
    "ProcessExecutor",
    "DeploymentStateMachine",
]
