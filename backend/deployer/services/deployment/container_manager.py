"""
Docker container lifecycle for challenge deployments.

Every docker invocation goes through the process executor in
argument-vector form; names, ports and ids are never interpolated into a
shell string.
"""
import json
import logging
import re
from typing import List, Optional

from deployer.core.exceptions import CommandError, PortBindError
from deployer.services.deployment.base import ContainerStats
from deployer.services.deployment.log_sink import DeploymentLogSink, NullLogSink
from deployer.services.deployment.process_executor import ProcessExecutor

logger = logging.getLogger(__name__)

STATS_FORMAT = '{"cpu": "{{.CPUPerc}}", "memory": "{{.MemPerc}}", "network": "{{.NetIO}}"}'
STATS_FIELD_PATTERN = re.compile(r'"(cpu|memory|network)"\s*:\s*"([^"]*)"')

PORT_IN_USE_MARKERS = (
    "port is already allocated",
    "address already in use",
    "ports are not available",
)
NO_SUCH_OBJECT_MARKERS = (
    "no such container",
    "no such image",
    "no such object",
)


def _is_missing(error: CommandError) -> bool:
    stderr = error.stderr.lower()
    return any(marker in stderr for marker in NO_SUCH_OBJECT_MARKERS)


def parse_stats(output: str) -> ContainerStats:
    """
    Parse ``docker stats`` output rendered with STATS_FORMAT.

    Malformed output degrades to whatever fields can be recovered plus an
    error marker.
    """
    text = output.strip()
    try:
        data = json.loads(text.splitlines()[0]) if text else None
    except (json.JSONDecodeError, IndexError):
        data = None

    if isinstance(data, dict):
        return ContainerStats(
            cpu=data.get("cpu"),
            memory=data.get("memory"),
            network=data.get("network"),
            error=None if {"cpu", "memory", "network"} <= data.keys() else "Incomplete stats",
        )

    partial = dict(STATS_FIELD_PATTERN.findall(text))
    return ContainerStats(
        cpu=partial.get("cpu"),
        memory=partial.get("memory"),
        network=partial.get("network"),
        error="Failed to parse stats",
    )


class ContainerManager:
    """
    Builds challenge images and manages their containers.

    Responsibilities:
    - Remove stale containers before a redeploy
    - Build images from a cloned working tree
    - Run, stop and remove containers
    - Report live resource usage
    """

    def __init__(self, executor: ProcessExecutor, docker_binary: str = "docker"):
        """
        Initialize the container manager.

        Args:
            executor: Process executor used for every docker call
            docker_binary: Name or path of the docker CLI
        """
        self.executor = executor
        self.docker = docker_binary

    async def _docker(
        self,
        args: List[str],
        label: str,
        sink: Optional[DeploymentLogSink] = None,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        return await self.executor.run(
            [self.docker, *args],
            cwd=cwd,
            timeout=timeout,
            sink=sink if sink is not None else NullLogSink(),
            label=label,
        )

    async def ensure_no_stale_container(self, name: str, sink: Optional[DeploymentLogSink] = None) -> int:
        """
        Stop and remove every container (running or not) with this name.

        Args:
            name: Exact container name
            sink: Deployment log sink

        Returns:
            Number of containers removed
        """
        output = await self._docker(
            ["ps", "-a", "--filter", f"name=^/{name}$", "--format", "{{.ID}}"],
            f"Looking up existing container {name}",
            sink,
        )
        container_ids = [line.strip() for line in output.splitlines() if line.strip()]
        for container_id in container_ids:
            logger.info(f"Removing stale container {name} ({container_id})")
            await self.stop_and_remove(container_id, sink)
        return len(container_ids)

    async def build_image(
        self,
        source_dir: str,
        image_name: str,
        sink: Optional[DeploymentLogSink] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Build an image from the Dockerfile at the root of ``source_dir``.

        Raises:
            CommandError: With the build tool's stderr if the build fails
        """
        await self._docker(
            ["build", "-t", image_name, "."],
            "Building Docker image",
            sink,
            cwd=source_dir,
            timeout=timeout,
        )
        logger.info(f"Built image {image_name} from {source_dir}")

    async def run_container(
        self,
        image_name: str,
        name: str,
        host_port: int,
        container_port: int,
        sink: Optional[DeploymentLogSink] = None,
    ) -> str:
        """
        Start a detached container publishing ``host_port:container_port``.

        Returns:
            Runtime-assigned container ID

        Raises:
            PortBindError: If the runtime reports the host port as taken
            CommandError: For any other runtime failure
        """
        try:
            output = await self._docker(
                [
                    "run", "-d",
                    "-p", f"{host_port}:{container_port}",
                    "--name", name,
                    "--restart", "unless-stopped",
                    image_name,
                ],
                "Running Docker container",
                sink,
            )
        except CommandError as e:
            stderr = e.stderr.lower()
            if any(marker in stderr for marker in PORT_IN_USE_MARKERS):
                raise PortBindError(e.label, e.returncode, e.stderr) from e
            raise

        lines = [line.strip() for line in output.splitlines() if line.strip()]
        container_id = lines[-1] if lines else ""
        logger.info(f"Started container {name} ({container_id[:12]}) on port {host_port}")
        return container_id

    async def stop_and_remove(self, container_id: str, sink: Optional[DeploymentLogSink] = None) -> None:
        """
        Stop then remove a container.

        A container that no longer exists already satisfies the goal and is
        not an error.
        """
        try:
            await self._docker(["stop", container_id], f"Stopping container {container_id[:12]}", sink)
        except CommandError as e:
            if _is_missing(e):
                logger.warning(f"Container {container_id} not found, considering it stopped")
                return
            raise

        try:
            await self._docker(["rm", container_id], f"Removing container {container_id[:12]}", sink)
        except CommandError as e:
            if not _is_missing(e):
                raise

        logger.info(f"Stopped container {container_id}")

    async def remove_container(self, name: str, sink: Optional[DeploymentLogSink] = None) -> None:
        """Force-remove a container by name or ID, ignoring a missing one."""
        try:
            await self._docker(["rm", "-f", name], f"Cleanup: remove container {name}", sink)
        except CommandError as e:
            if not _is_missing(e):
                raise

    async def remove_image(self, image_name: str, sink: Optional[DeploymentLogSink] = None) -> None:
        """Force-remove an image, ignoring a missing one."""
        try:
            await self._docker(["rmi", "-f", image_name], f"Cleanup: remove image {image_name}", sink)
        except CommandError as e:
            if not _is_missing(e):
                raise

    async def get_stats(self, container_id: str) -> ContainerStats:
        """
        Query live CPU, memory and network usage of a container.

        Raises:
            CommandError: If docker stats exits non-zero
        """
        output = await self._docker(
            ["stats", container_id, "--no-stream", "--format", STATS_FORMAT],
            f"Reading stats of {container_id[:12]}",
            timeout=30,
        )
        stats = parse_stats(output)
        if stats.error:
            logger.warning(f"Stats for {container_id} degraded: {stats.error}")
        return stats
