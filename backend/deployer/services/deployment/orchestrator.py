"""
Deployment orchestration service.

Coordinates between:
- DeploymentStore for persisted state and logs
- PortAllocator for the advisory host port check
- ProcessExecutor for the repository clone
- ContainerManager for image build and container lifecycle
"""
import asyncio
import logging
import os
import re
import shlex
import shutil
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit
from uuid import UUID

from deployer.core.config import settings
from deployer.core.exceptions import (
    ChallengeNotDeployableError,
    ChallengeNotFoundError,
    CommandError,
    DeploymentExecutionError,
    DeploymentNotActiveError,
    DirectoryExistsError,
    DomainException,
    InvalidGitHubUrlError,
    NoActiveContainerError,
    PortBindError,
    PortConflictError,
)
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
from deployer.services.deployment.log_sink import DeploymentLogSink
from deployer.services.deployment.port_allocator import PortAllocator, validate_port
from deployer.services.deployment.process_executor import ProcessExecutor
from deployer.services.deployment.state_machine import DeploymentStateMachine

logger = logging.getLogger(__name__)

GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/[A-Za-z0-9_-]+/[A-Za-z0-9_.-]+?(\.git)?$")


def is_valid_github_url(url: Optional[str]) -> bool:
    """Check that a URL points at a github.com owner/repo."""
    return bool(url) and GITHUB_URL_PATTERN.fullmatch(url) is not None


def slugify(value: str) -> str:
    """Make a title safe for use in a directory name."""
    value = re.sub(r"\s+", "-", str(value).lower())
    value = re.sub(r"[^\w\-]+", "", value)
    return re.sub(r"\-\-+", "-", value)


class DeploymentOrchestrator:
    """
    Drives a challenge from repository URL to running container and back.

    Each public operation that changes state holds the challenge's lease,
    so one challenge never has two deploys or a deploy and a stop in flight.
    """

    def __init__(
        self,
        store: DeploymentStore,
        port_allocator: PortAllocator,
        containers: ContainerManager,
        executor: ProcessExecutor,
        challenges_dir: Optional[str] = None,
        leases: Optional[ChallengeLeases] = None,
        max_concurrent: Optional[int] = None,
        github_username: Optional[str] = None,
        github_token: Optional[str] = None,
        image_prefix: Optional[str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Persistence for records and logs
            port_allocator: Host port scanner
            containers: Container lifecycle manager
            executor: Process executor used for git
            challenges_dir: Parent directory of working trees (default from settings)
            leases: Per-challenge lease registry
            max_concurrent: Pipelines allowed to run at once (default from settings)
            github_username: Clone credentials user (default from settings)
            github_token: Clone credentials token (default from settings)
            image_prefix: Prefix of image/container names (default from settings)
        """
        self.store = store
        self.port_allocator = port_allocator
        self.containers = containers
        self.executor = executor
        self.challenges_dir = challenges_dir or settings.CHALLENGES_DIR
        self.leases = leases or ChallengeLeases()
        self.github_username = settings.GITHUB_USERNAME if github_username is None else github_username
        self.github_token = settings.GITHUB_TOKEN if github_token is None else github_token
        self.image_prefix = image_prefix or settings.IMAGE_PREFIX
        self._slots = asyncio.Semaphore(max_concurrent or settings.MAX_CONCURRENT_DEPLOYMENTS)

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------

    def working_directory(self, challenge: ChallengeSpec) -> str:
        """Deterministic clone location for a challenge."""
        return os.path.join(self.challenges_dir, f"challenge-{challenge.id}-{slugify(challenge.title)}")

    def container_name(self, challenge_id: UUID) -> str:
        """Image and container name; docker requires lowercase."""
        return f"{self.image_prefix}-{challenge_id}".lower()

    def _secrets(self) -> List[str]:
        if not self.github_token:
            return []
        return [self.github_token, quote(self.github_token, safe="")]

    def authenticated_url(self, github_url: str) -> str:
        """Inject configured credentials into an https repository URL."""
        if not (self.github_username and self.github_token):
            return github_url
        parts = urlsplit(github_url)
        netloc = f"{quote(self.github_username, safe='')}:{quote(self.github_token, safe='')}@{parts.hostname}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))

    def clone_command(self, github_url: str, work_dir: str) -> str:
        """Shell command that clones into ``work_dir`` and resets the tree."""
        url = shlex.quote(self.authenticated_url(github_url))
        target = shlex.quote(work_dir)
        return f"git clone {url} {target} && cd {target} && git reset --hard HEAD"

    # -------------------------------------------------------------------------
    # Validation and port policy
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_challenge(challenge: ChallengeSpec) -> tuple[int, int]:
        """
        Check that a challenge can be deployed.

        Returns:
            Tuple of (host_port, internal_port)

        Raises:
            ChallengeNotDeployableError, InvalidGitHubUrlError, InvalidPortError
        """
        if not challenge.deployable:
            raise ChallengeNotDeployableError(str(challenge.id))
        if not is_valid_github_url(challenge.github_url):
            raise InvalidGitHubUrlError(challenge.github_url)
        port = validate_port(challenge.port, "Port")
        internal_port = validate_port(challenge.internal_port, "Internal Port")
        return port, internal_port

    async def _resolve_port(self, record: DeploymentRecord, port: int, auto_port: bool) -> int:
        # A challenge that is already running on this port frees it during redeploy
        own = [record.port] if record.status == DeploymentStatus.ACTIVE and record.port else []
        if not await self.port_allocator.is_port_in_use(port, ignore=own):
            return port

        available = await self.port_allocator.find_available_ports(exclude=[port])
        if auto_port and available:
            logger.info(f"Port {port} in use for challenge {record.challenge_id}, auto-assigned {available[0]}")
            return available[0]
        logger.info(f"Port {port} in use for challenge {record.challenge_id}, rejecting deploy")
        raise PortConflictError(port, available)

    async def _available_ports_or_empty(self, exclude: Iterable[int]) -> List[int]:
        try:
            return await self.port_allocator.find_available_ports(exclude=exclude)
        except DomainException as e:
            logger.warning(f"Could not list available ports: {e.message}")
            return []

    # -------------------------------------------------------------------------
    # Deploy
    # -------------------------------------------------------------------------

    async def deploy(
        self,
        challenge_id: UUID,
        force: bool = False,
        auto_port: bool = False,
        is_admin: bool = False,
    ) -> DeployResult:
        """
        Clone, build and run a challenge.

        Args:
            challenge_id: Challenge to deploy
            force: Replace an existing working directory (admins only)
            auto_port: Take the first free port if the configured one is busy
            is_admin: Whether the caller holds the admin role

        Returns:
            DeployResult with the assigned port, container ID and logs

        Raises:
            ChallengeNotFoundError: Unknown challenge
            ValidationError: Challenge not deployable, bad URL or ports
            DeploymentInProgressError: Another operation holds the lease
            PortConflictError: Host port busy (before or during container start)
            DirectoryExistsError: Working directory exists and no admin force
            DeploymentExecutionError: Clone, build or run failed
        """
        challenge = await self.store.get_challenge(challenge_id)
        port, internal_port = self.validate_challenge(challenge)

        async with self.leases.hold(challenge_id):
            record = await self.store.get_record(challenge_id) or DeploymentRecord(challenge_id=challenge_id)
            DeploymentStateMachine.target(record.status, "deploy")

            port = await self._resolve_port(record, port, auto_port)

            work_dir = self.working_directory(challenge)
            replace_existing = False
            if os.path.exists(work_dir):
                if is_admin and force:
                    replace_existing = True
                elif is_admin:
                    raise DirectoryExistsError(work_dir, "Use ?force=true to confirm overwriting the existing repo.")
                else:
                    raise DirectoryExistsError(work_dir, "Only admin can force redeploy using ?force=true.")

            return await self._run_pipeline(challenge, record, port, internal_port, work_dir, replace_existing)

    async def _run_pipeline(
        self,
        challenge: ChallengeSpec,
        record: DeploymentRecord,
        port: int,
        internal_port: int,
        work_dir: str,
        replace_existing: bool,
    ) -> DeployResult:
        sink = DeploymentLogSink(self.store, challenge.id, redact=self._secrets())

        DeploymentStateMachine.apply(record, "deploy")
        record.github_url = challenge.github_url
        record.port = port
        record.internal_port = internal_port
        sink.write("Deployment started...")
        record = await self.store.save_record(record)
        await sink.flush()

        if self._slots.locked():
            sink.write("[INFO] Waiting for a free deployment slot")
            await sink.flush()

        name = self.container_name(challenge.id)
        async with self._slots:
            clone_started = False
            try:
                if replace_existing:
                    sink.write("Admin confirmed force redeploy. Removing existing directory.")
                    await asyncio.to_thread(shutil.rmtree, work_dir)
                await asyncio.to_thread(os.makedirs, self.challenges_dir, exist_ok=True)

                clone_started = True
                await self.executor.run(
                    self.clone_command(challenge.github_url, work_dir),
                    sink=sink,
                    label="Cloning repository",
                )
                sink.write(f"[INFO] Cloned repository to {work_dir}")
                record.storage_path = work_dir

                await self.containers.ensure_no_stale_container(name, sink)
                await self.containers.build_image(work_dir, name, sink)
                container_id = await self.containers.run_container(name, name, port, internal_port, sink)
            except Exception as e:
                reason = e.message if isinstance(e, DomainException) else str(e)
                logger.error(f"Deployment of challenge {challenge.id} failed: {reason}")
                await self._compensate(name, work_dir if clone_started else None, sink)

                DeploymentStateMachine.apply(record, "fail")
                record.storage_path = None
                sink.write(f"[ERROR] {reason}")
                await self.store.save_record(record)
                await sink.flush()

                if isinstance(e, PortBindError):
                    available = await self._available_ports_or_empty(exclude=[port])
                    raise PortConflictError(port, available) from e
                raise DeploymentExecutionError(str(challenge.id), reason) from e

        record.container_id = container_id
        DeploymentStateMachine.apply(record, "activate")
        record.deployed_at = datetime.utcnow()
        sink.write(f"Deployment active on port {port} (container {container_id[:12]})")
        record = await self.store.save_record(record)
        await sink.flush()
        logger.info(f"Challenge {challenge.id} deployed on port {port}")

        return DeployResult(
            status=record.status,
            port=port,
            container_id=container_id,
            logs=await self.store.get_logs(challenge.id),
        )

    async def _compensate(self, name: str, work_dir: Optional[str], sink: DeploymentLogSink) -> None:
        """
        Undo whatever a failed pipeline may have created.

        Errors are logged and swallowed; the failure that triggered the
        cleanup is the one reported to the caller.
        """
        steps = [
            ("remove container", self.containers.remove_container(name, sink)),
            ("remove image", self.containers.remove_image(name, sink)),
        ]
        if work_dir and os.path.exists(work_dir):
            steps.insert(0, ("remove working directory", asyncio.to_thread(shutil.rmtree, work_dir)))

        results = await asyncio.gather(*(step for _, step in steps), return_exceptions=True)
        for (description, _), result in zip(steps, results):
            if isinstance(result, Exception):
                message = result.message if isinstance(result, DomainException) else str(result)
                logger.warning(f"Cleanup step '{description}' failed for {name}: {message}")
                sink.write(f"[WARN] Cleanup: {description} failed: {message}")

    # -------------------------------------------------------------------------
    # Stop and teardown
    # -------------------------------------------------------------------------

    async def stop(self, challenge_id: UUID) -> StopResult:
        """
        Stop and remove a challenge's running container.

        Raises:
            ChallengeNotFoundError: Unknown challenge
            DeploymentInProgressError: Another operation holds the lease
            DeploymentNotActiveError: Nothing is running
            DeploymentExecutionError: The runtime failed to stop the container
        """
        await self.store.get_challenge(challenge_id)

        async with self.leases.hold(challenge_id):
            record = await self.store.get_record(challenge_id)
            if record is None or record.status != DeploymentStatus.ACTIVE or not record.container_id:
                current = record.status.value if record else DeploymentStatus.NOT_DEPLOYED.value
                raise DeploymentNotActiveError(str(challenge_id), current)

            sink = DeploymentLogSink(self.store, challenge_id)
            try:
                await self.containers.stop_and_remove(record.container_id, sink)
            except CommandError as e:
                sink.write(f"[ERROR] Stop failed: {e.message}")
                await sink.flush()
                raise DeploymentExecutionError(str(challenge_id), e.message) from e

            DeploymentStateMachine.apply(record, "stop")
            sink.write("Container stopped")
            record = await self.store.save_record(record)
            await sink.flush()
            logger.info(f"Challenge {challenge_id} stopped")
            return StopResult(status=record.status)

    async def teardown(self, challenge_id: UUID) -> bool:
        """
        Remove every trace of a challenge's deployment.

        Called when the challenge itself is deleted: stops the container,
        removes image and working tree, and deletes the record with its logs.

        Returns:
            True if a record existed

        Raises:
            DeploymentInProgressError: Another operation holds the lease
            DeploymentExecutionError: The runtime failed to stop the container
        """
        async with self.leases.hold(challenge_id):
            record = await self.store.get_record(challenge_id)

            paths = set()
            if record and record.storage_path:
                paths.add(record.storage_path)
            try:
                paths.add(self.working_directory(await self.store.get_challenge(challenge_id)))
            except ChallengeNotFoundError:
                pass

            if record and record.container_id:
                try:
                    await self.containers.stop_and_remove(record.container_id)
                except CommandError as e:
                    raise DeploymentExecutionError(str(challenge_id), e.message) from e

            name = self.container_name(challenge_id)
            try:
                await self.containers.remove_image(name)
            except CommandError as e:
                logger.warning(f"Could not remove image {name}: {e.message}")

            for path in paths:
                if os.path.exists(path):
                    await asyncio.to_thread(shutil.rmtree, path)
                    logger.info(f"Removed working directory {path}")

            deleted = await self.store.delete_record(challenge_id)
            logger.info(f"Tore down deployment of challenge {challenge_id}")
            return deleted

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_status(self, challenge_id: UUID) -> DeploymentRecord:
        """Current deployment record; a never-deployed challenge reports not_deployed."""
        await self.store.get_challenge(challenge_id)
        record = await self.store.get_record(challenge_id)
        return record or DeploymentRecord(challenge_id=challenge_id)

    async def get_logs(self, challenge_id: UUID) -> List[str]:
        """All deployment log lines of a challenge in order."""
        await self.store.get_challenge(challenge_id)
        return await self.store.get_logs(challenge_id)

    async def get_stats(self, challenge_id: UUID) -> ContainerStats:
        """
        Live resource usage of a challenge's container.

        Raises:
            NoActiveContainerError: If the challenge has no running container
        """
        await self.store.get_challenge(challenge_id)
        record = await self.store.get_record(challenge_id)
        if record is None or record.status != DeploymentStatus.ACTIVE or not record.container_id:
            raise NoActiveContainerError(str(challenge_id))
        return await self.containers.get_stats(record.container_id)

    async def list_available_ports(self, start: Optional[int] = None, end: Optional[int] = None) -> List[int]:
        """Up to ten free host ports in a range."""
        return await self.port_allocator.find_available_ports(start, end)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def recover_stuck_deployments(self, max_age_minutes: Optional[int] = None) -> int:
        """
        Fail deployments stuck in building.

        A record still building after ``max_age_minutes`` whose challenge
        holds no lease in this process was abandoned by a crashed or
        restarted worker.

        Returns:
            Number of deployments marked as failed
        """
        if max_age_minutes is None:
            max_age_minutes = settings.STUCK_BUILD_MINUTES
        cutoff = datetime.utcnow() - timedelta(minutes=max_age_minutes)
        recovered = 0

        for record in await self.store.list_records_by_status(DeploymentStatus.BUILDING, cutoff):
            if self.leases.is_held(record.challenge_id):
                continue
            logger.warning(f"Deployment {record.challenge_id} stuck in building, marking as failed")
            DeploymentStateMachine.apply(record, "fail")
            sink = DeploymentLogSink(self.store, record.challenge_id)
            sink.write(f"[ERROR] Deployment did not finish within {max_age_minutes} minutes, marking as failed")
            await self.store.save_record(record)
            await sink.flush()
            recovered += 1

        if recovered:
            logger.info(f"Recovered {recovered} stuck deployments")
        return recovered
