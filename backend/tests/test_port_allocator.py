"""
Tests for the port allocator.

Tests cover:
- Listing tool selection per platform
- Parsing of ss / netstat output
- Port validation
- Free port search (find_available_ports, is_port_in_use)

Run with: pytest backend/tests/test_port_allocator.py -v
"""
from unittest.mock import AsyncMock, patch

import pytest

from deployer.core.exceptions import (
    InvalidPortError,
    InvalidPortRangeError,
    PortScanError,
    UnsupportedPlatformError,
)
from deployer.services.deployment.port_allocator import (
    MAX_AVAILABLE_PORTS,
    PortAllocator,
    get_port_scan_command,
    parse_port_listing,
    validate_port,
)

SS_OUTPUT = """\
Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
udp   UNCONN 0      0      127.0.0.53%lo:53         0.0.0.0:*
tcp   LISTEN 0      4096         0.0.0.0:1024       0.0.0.0:*
tcp   LISTEN 0      4096         0.0.0.0:1026       0.0.0.0:*
tcp   LISTEN 0      128             [::]:22            [::]:*
tcp   ESTAB  0      0      192.168.1.10:41234  140.82.112.3:443
"""

NETSTAT_WINDOWS_OUTPUT = """\
Active Connections

  Proto  Local Address          Foreign Address        State           PID
  TCP    0.0.0.0:135            0.0.0.0:0              LISTENING       1104
  TCP    127.0.0.1:5432         0.0.0.0:0              LISTENING       3312
  UDP    [::]:500               *:*                                    4420
"""

NETSTAT_DARWIN_OUTPUT = """\
Active Internet connections (including servers)
Proto Recv-Q Send-Q  Local Address          Foreign Address        (state)
tcp4       0      0  127.0.0.1.5432         *.*                    LISTEN
tcp46      0      0  *.631                  *.*                    LISTEN
udp4       0      0  *.5353                 *.*
"""


def _mock_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> AsyncMock:
    process = AsyncMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.returncode = returncode
    return process


class TestPortScanCommand:
    """Tests for listing tool selection."""

    @pytest.mark.parametrize(
        "platform, expected",
        [
            ("linux", ["ss", "-tuln"]),
            ("darwin", ["netstat", "-anv"]),
            ("win32", ["netstat", "-ano"]),
        ],
    )
    def test_known_platforms(self, platform, expected):
        assert get_port_scan_command(platform).args == expected

    def test_unknown_platform_raises(self):
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            get_port_scan_command("sunos5")

        assert exc_info.value.details["platform"] == "sunos5"


class TestParsePortListing:
    """Tests for parse_port_listing."""

    def test_parses_ss_local_addresses_only(self):
        ports = parse_port_listing(SS_OUTPUT)

        assert ports == {53, 1024, 1026, 22, 41234}
        # Peer port of the established connection is not a local binding
        assert 443 not in ports

    def test_parses_windows_netstat(self):
        assert parse_port_listing(NETSTAT_WINDOWS_OUTPUT) == {135, 5432, 500}

    def test_parses_darwin_netstat(self):
        assert parse_port_listing(NETSTAT_DARWIN_OUTPUT) == {5432, 631, 5353}

    def test_empty_output(self):
        assert parse_port_listing("") == set()


class TestValidatePort:
    """Tests for validate_port."""

    def test_accepts_numeric_strings(self):
        assert validate_port("8080") == 8080

    @pytest.mark.parametrize("value", [0, 65536, -1, "abc", None, True])
    def test_rejects_invalid_values(self, value):
        with pytest.raises(InvalidPortError):
            validate_port(value, "Internal Port")


class TestPortAllocator:
    """Tests for PortAllocator scanning."""

    @pytest.mark.asyncio
    async def test_list_used_ports(self):
        allocator = PortAllocator(platform="linux")

        with patch("asyncio.create_subprocess_exec", return_value=_mock_process(SS_OUTPUT.encode())) as mock_exec:
            ports = await allocator.list_used_ports()

        assert mock_exec.call_args.args == ("ss", "-tuln")
        assert 1024 in ports

    @pytest.mark.asyncio
    async def test_list_used_ports_tool_failure(self):
        allocator = PortAllocator(platform="linux")

        with patch(
            "asyncio.create_subprocess_exec",
            return_value=_mock_process(stderr=b"permission denied", returncode=1),
        ):
            with pytest.raises(PortScanError) as exc_info:
                await allocator.list_used_ports()

        assert "permission denied" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_list_used_ports_tool_missing(self):
        allocator = PortAllocator(platform="linux")

        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("ss")):
            with pytest.raises(PortScanError):
                await allocator.list_used_ports()

    @pytest.mark.asyncio
    async def test_find_available_ports_skips_used(self):
        allocator = PortAllocator(platform="linux")

        with patch.object(allocator, "list_used_ports", new_callable=AsyncMock) as mock_used:
            mock_used.return_value = {1024, 1026}

            ports = await allocator.find_available_ports(1024, 1030)

        assert ports == [1025, 1027, 1028, 1029, 1030]

    @pytest.mark.asyncio
    async def test_find_available_ports_caps_at_ten(self):
        allocator = PortAllocator(platform="linux")

        with patch.object(allocator, "list_used_ports", new_callable=AsyncMock) as mock_used:
            mock_used.return_value = set()

            ports = await allocator.find_available_ports(2000, 3000)

        assert len(ports) == MAX_AVAILABLE_PORTS
        assert ports == list(range(2000, 2010))

    @pytest.mark.asyncio
    async def test_find_available_ports_honours_exclude(self):
        allocator = PortAllocator(platform="linux")

        with patch.object(allocator, "list_used_ports", new_callable=AsyncMock) as mock_used:
            mock_used.return_value = set()

            ports = await allocator.find_available_ports(4445, 4447, exclude=[4445])

        assert ports == [4446, 4447]

    @pytest.mark.asyncio
    async def test_find_available_ports_empty_when_range_full(self):
        allocator = PortAllocator(platform="linux")

        with patch.object(allocator, "list_used_ports", new_callable=AsyncMock) as mock_used:
            mock_used.return_value = {5000, 5001}

            assert await allocator.find_available_ports(5000, 5001) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start, end", [(0, 100), (100, 70000), (3000, 2000)])
    async def test_find_available_ports_invalid_range(self, start, end):
        allocator = PortAllocator(platform="linux")

        with pytest.raises(InvalidPortRangeError):
            await allocator.find_available_ports(start, end)

    @pytest.mark.asyncio
    async def test_is_port_in_use(self):
        allocator = PortAllocator(platform="linux")

        with patch.object(allocator, "list_used_ports", new_callable=AsyncMock) as mock_used:
            mock_used.return_value = {4445}

            assert await allocator.is_port_in_use(4445) is True
            assert await allocator.is_port_in_use(4446) is False
            assert await allocator.is_port_in_use(4445, ignore=[4445]) is False
