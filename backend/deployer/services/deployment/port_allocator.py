"""
Host port discovery for challenge deployments.

Lists the TCP/UDP ports bound on the host with the platform's socket
listing tool and finds free ports in a range. The result is advisory:
nothing is reserved, and the container runtime's own bind remains the
authoritative conflict check.
"""
import asyncio
import logging
import re
import sys
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from deployer.core.config import settings
from deployer.core.exceptions import (
    InvalidPortError,
    InvalidPortRangeError,
    PortScanError,
    UnsupportedPlatformError,
)

logger = logging.getLogger(__name__)

# Maximum number of candidates returned by find_available_ports
MAX_AVAILABLE_PORTS = 10

MIN_PORT = 1
MAX_PORT = 65535

# "0.0.0.0:8080", "[::]:22", "127.0.0.53%lo:53" and BSD-style "*.631" / "127.0.0.1.5432"
ADDRESS_PORT_PATTERN = re.compile(r"^\S*?[:.](\d{1,5})$")


@dataclass
class PortScanCommand:
    """Listing tool for one platform."""

    args: List[str]


PORT_SCAN_COMMANDS = {
    "linux": PortScanCommand(["ss", "-tuln"]),
    "darwin": PortScanCommand(["netstat", "-anv"]),
    "win32": PortScanCommand(["netstat", "-ano"]),
}


def get_port_scan_command(platform: Optional[str] = None) -> PortScanCommand:
    """
    Pick the listing tool for a platform.

    Args:
        platform: Value of ``sys.platform`` (defaults to the running host)

    Raises:
        UnsupportedPlatformError: If the platform has no known listing method
    """
    platform = platform or sys.platform
    for prefix, command in PORT_SCAN_COMMANDS.items():
        if platform.startswith(prefix):
            return command
    logger.critical(f"Unsupported platform for port scanning: {platform}")
    raise UnsupportedPlatformError(platform)


def parse_port_listing(output: str) -> Set[int]:
    """
    Extract bound ports from listing tool output.

    The first ``address:port`` token of each line is the local address on
    every supported tool; header lines and peer addresses are skipped.

    Args:
        output: Raw stdout of ss/netstat

    Returns:
        Set of port numbers
    """
    ports: Set[int] = set()
    for line in output.splitlines():
        for token in line.split():
            match = ADDRESS_PORT_PATTERN.match(token)
            if not match:
                continue
            port = int(match.group(1))
            if MIN_PORT <= port <= MAX_PORT:
                ports.add(port)
            break
    return ports


def validate_port(value, name: str = "Port") -> int:
    """
    Coerce and range-check a port number.

    Raises:
        InvalidPortError: If the value is not an integer in [1, 65535]
    """
    if isinstance(value, bool):
        raise InvalidPortError(name, value)
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise InvalidPortError(name, value)
    if not MIN_PORT <= port <= MAX_PORT:
        raise InvalidPortError(name, value)
    return port


class PortAllocator:
    """
    Advisory host port scanner.

    Finds free ports in a configurable range (default 1024-65535).
    """

    def __init__(
        self,
        port_range_start: int = None,
        port_range_end: int = None,
        platform: Optional[str] = None,
        scan_timeout: float = 10,
    ):
        """
        Initialize the port allocator.

        Args:
            port_range_start: Start of default scan range (default from settings)
            port_range_end: End of default scan range (default from settings)
            platform: Override of ``sys.platform`` for the listing tool
            scan_timeout: Seconds before the listing tool is abandoned
        """
        self.port_range_start = port_range_start or settings.PORT_RANGE_START
        self.port_range_end = port_range_end or settings.PORT_RANGE_END
        self.platform = platform
        self.scan_timeout = scan_timeout

    async def list_used_ports(self) -> Set[int]:
        """
        Get all ports currently bound on the host.

        Returns:
            Set of port numbers in use

        Raises:
            UnsupportedPlatformError: If the host OS has no listing method
            PortScanError: If the listing tool fails
        """
        command = get_port_scan_command(self.platform)
        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *command.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.critical(f"Port scan error: {e}")
            raise PortScanError(str(e))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.scan_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise PortScanError(f"{command.args[0]} timed out after {self.scan_timeout} seconds")

        if proc.returncode != 0:
            error_msg = f"{command.args[0]} exited with code {proc.returncode}: {stderr.decode().strip()}"
            logger.error(f"Port scan failed: {error_msg}")
            raise PortScanError(error_msg)

        ports = parse_port_listing(stdout.decode(errors="replace"))
        logger.debug(
            f"Port scan completed in {(time.monotonic() - started) * 1000:.0f}ms, "
            f"{len(ports)} ports in use"
        )
        return ports

    async def find_available_ports(
        self,
        start: Optional[int] = None,
        end: Optional[int] = None,
        exclude: Iterable[int] = (),
    ) -> List[int]:
        """
        Find up to ten free ports in an inclusive range.

        Args:
            start: First port to consider (default: configured range start)
            end: Last port to consider (default: configured range end)
            exclude: Ports to skip even if free

        Returns:
            Ascending list of at most ten free ports; may be empty

        Raises:
            InvalidPortRangeError: If the range is outside [1, 65535] or reversed
        """
        start = self.port_range_start if start is None else start
        end = self.port_range_end if end is None else end
        if not (MIN_PORT <= start <= MAX_PORT and MIN_PORT <= end <= MAX_PORT) or start > end:
            raise InvalidPortRangeError(start, end)

        logger.info(f"Searching for available ports in range {start}-{end}")
        used = await self.list_used_ports()
        skip = used | set(exclude)

        available: List[int] = []
        for port in range(start, end + 1):
            if port in skip:
                continue
            available.append(port)
            if len(available) >= MAX_AVAILABLE_PORTS:
                break

        logger.info(f"Available ports found: {available}")
        return available

    async def is_port_in_use(self, port: int, ignore: Iterable[int] = ()) -> bool:
        """
        Check whether a host port is currently bound.

        Args:
            port: Port to check
            ignore: Ports to treat as free (e.g. the caller's own running container)
        """
        if port in set(ignore):
            return False
        return port in await self.list_used_ports()

