"""
Tests for the container lifecycle manager.

The process executor is mocked; assertions check the docker argument
vectors and how runtime errors are interpreted.
"""
from unittest.mock import AsyncMock

import pytest

from deployer.core.exceptions import CommandError, PortBindError
from deployer.services.deployment.container_manager import (
    STATS_FORMAT,
    ContainerManager,
    parse_stats,
)


@pytest.fixture
def executor():
    executor = AsyncMock()
    executor.run = AsyncMock(return_value="")
    return executor


@pytest.fixture
def manager(executor):
    return ContainerManager(executor)


def _argv(call):
    return call.args[0]


class TestEnsureNoStaleContainer:
    """Tests for ensure_no_stale_container."""

    @pytest.mark.asyncio
    async def test_no_existing_container(self, manager, executor):
        removed = await manager.ensure_no_stale_container("ctf-abc")

        assert removed == 0
        assert executor.run.call_count == 1
        assert _argv(executor.run.call_args) == [
            "docker", "ps", "-a", "--filter", "name=^/ctf-abc$", "--format", "{{.ID}}",
        ]

    @pytest.mark.asyncio
    async def test_removes_existing_container(self, manager, executor):
        executor.run.side_effect = ["0123456789ab\n", "", ""]

        removed = await manager.ensure_no_stale_container("ctf-abc")

        assert removed == 1
        argvs = [_argv(call) for call in executor.run.call_args_list]
        assert argvs[1] == ["docker", "stop", "0123456789ab"]
        assert argvs[2] == ["docker", "rm", "0123456789ab"]


class TestBuildAndRun:
    """Tests for build_image and run_container."""

    @pytest.mark.asyncio
    async def test_build_image_runs_in_source_dir(self, manager, executor):
        await manager.build_image("/srv/challenges/challenge-1-web", "ctf-1")

        call = executor.run.call_args
        assert _argv(call) == ["docker", "build", "-t", "ctf-1", "."]
        assert call.kwargs["cwd"] == "/srv/challenges/challenge-1-web"

    @pytest.mark.asyncio
    async def test_build_failure_propagates(self, manager, executor):
        executor.run.side_effect = CommandError("Building Docker image", 1, "Dockerfile not found")

        with pytest.raises(CommandError) as exc_info:
            await manager.build_image("/tmp/src", "ctf-1")

        assert "Dockerfile not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_run_container_returns_id(self, manager, executor):
        executor.run.return_value = "Unable to find image locally\nf00dfeed1234"

        container_id = await manager.run_container("ctf-1", "ctf-1", 4445, 8080)

        assert container_id == "f00dfeed1234"
        assert _argv(executor.run.call_args) == [
            "docker", "run", "-d",
            "-p", "4445:8080",
            "--name", "ctf-1",
            "--restart", "unless-stopped",
            "ctf-1",
        ]

    @pytest.mark.asyncio
    async def test_run_container_port_in_use(self, manager, executor):
        executor.run.side_effect = CommandError(
            "Running Docker container",
            125,
            "Bind for 0.0.0.0:4445 failed: port is already allocated",
        )

        with pytest.raises(PortBindError):
            await manager.run_container("ctf-1", "ctf-1", 4445, 8080)

    @pytest.mark.asyncio
    async def test_run_container_other_failure(self, manager, executor):
        executor.run.side_effect = CommandError("Running Docker container", 125, "invalid reference format")

        with pytest.raises(CommandError) as exc_info:
            await manager.run_container("ctf-1", "ctf-1", 4445, 8080)

        assert not isinstance(exc_info.value, PortBindError)


class TestStopAndRemove:
    """Tests for stop_and_remove and cleanup helpers."""

    @pytest.mark.asyncio
    async def test_stop_then_remove(self, manager, executor):
        await manager.stop_and_remove("abc123")

        argvs = [_argv(call) for call in executor.run.call_args_list]
        assert argvs == [["docker", "stop", "abc123"], ["docker", "rm", "abc123"]]

    @pytest.mark.asyncio
    async def test_missing_container_is_not_an_error(self, manager, executor):
        executor.run.side_effect = CommandError("Stopping container", 1, "Error response from daemon: No such container: abc123")

        await manager.stop_and_remove("abc123")

        assert executor.run.call_count == 1

    @pytest.mark.asyncio
    async def test_other_stop_failure_propagates(self, manager, executor):
        executor.run.side_effect = CommandError("Stopping container", 1, "permission denied while trying to connect")

        with pytest.raises(CommandError):
            await manager.stop_and_remove("abc123")

    @pytest.mark.asyncio
    async def test_cleanup_ignores_missing_objects(self, manager, executor):
        executor.run.side_effect = [
            CommandError("Cleanup", 1, "Error: No such container: ctf-1"),
            CommandError("Cleanup", 1, "Error: No such image: ctf-1"),
        ]

        await manager.remove_container("ctf-1")
        await manager.remove_image("ctf-1")

        argvs = [_argv(call) for call in executor.run.call_args_list]
        assert argvs == [["docker", "rm", "-f", "ctf-1"], ["docker", "rmi", "-f", "ctf-1"]]


class TestStats:
    """Tests for get_stats and parse_stats."""

    @pytest.mark.asyncio
    async def test_get_stats(self, manager, executor):
        executor.run.return_value = '{"cpu": "0.52%", "memory": "1.30%", "network": "1.2kB / 648B"}'

        stats = await manager.get_stats("abc123")

        assert _argv(executor.run.call_args) == ["docker", "stats", "abc123", "--no-stream", "--format", STATS_FORMAT]
        assert stats.cpu == "0.52%"
        assert stats.memory == "1.30%"
        assert stats.network == "1.2kB / 648B"
        assert stats.error is None

    @pytest.mark.asyncio
    async def test_get_stats_runtime_failure(self, manager, executor):
        executor.run.side_effect = CommandError("Reading stats", 1, "No such container: abc123")

        with pytest.raises(CommandError):
            await manager.get_stats("abc123")

    def test_parse_stats_malformed_output(self):
        stats = parse_stats('{"cpu": "0.52%", "memory": "1.30%", "network": "1.2kB / 6')

        assert stats.error == "Failed to parse stats"
        assert stats.cpu == "0.52%"
        assert stats.memory == "1.30%"
        assert stats.network is None

    def test_parse_stats_garbage(self):
        stats = parse_stats("not json at all")

        assert stats.error == "Failed to parse stats"
        assert stats.cpu is None

    def test_parse_stats_missing_field(self):
        stats = parse_stats('{"cpu": "0.10%", "memory": "2.00%"}')

        assert stats.error == "Incomplete stats"
        assert stats.network is None
