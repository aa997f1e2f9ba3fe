"""
Wiring of the deployment orchestrator for the running application.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deployer.core.config import settings
from deployer.core.database import async_session_maker
from deployer.repositories.deployment_store import SqlDeploymentStore
from deployer.services.deployment.container_manager import ContainerManager
from deployer.services.deployment.orchestrator import DeploymentOrchestrator
from deployer.services.deployment.port_allocator import PortAllocator
from deployer.services.deployment.process_executor import ProcessExecutor


def build_orchestrator(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> DeploymentOrchestrator:
    """Create an orchestrator backed by the database and the local Docker host."""
    executor = ProcessExecutor(
        default_timeout=settings.COMMAND_TIMEOUT,
        flush_interval=settings.LOG_FLUSH_INTERVAL,
    )
    return DeploymentOrchestrator(
        store=SqlDeploymentStore(session_maker or async_session_maker),
        port_allocator=PortAllocator(settings.PORT_RANGE_START, settings.PORT_RANGE_END),
        containers=ContainerManager(executor),
        executor=executor,
        challenges_dir=settings.CHALLENGES_DIR,
        max_concurrent=settings.MAX_CONCURRENT_DEPLOYMENTS,
    )
