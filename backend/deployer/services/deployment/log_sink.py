"""
Buffered, single-writer log channel for one deployment.

Writers call ``write`` (synchronous, never blocks) and lines accumulate in
memory until the next flush. ``flush`` drains the whole buffer in one step
and persists it under a lock, so the periodic flusher and the final flush
of a command can never persist the same line twice or reorder lines.
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Sequence
from uuid import UUID

from deployer.services.deployment.base import DeploymentStore

logger = logging.getLogger(__name__)


def timestamp() -> str:
    """ISO-8601 UTC timestamp used as the prefix of every log line."""
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


class DeploymentLogSink:
    """
    Append-only log channel of a single deployment.

    Attributes:
        challenge_id: Deployment the lines belong to
    """

    def __init__(
        self,
        store: DeploymentStore,
        challenge_id: UUID,
        redact: Sequence[str] = (),
    ):
        self.store = store
        self.challenge_id = challenge_id
        self.redact = [secret for secret in redact if secret]
        self._pending: List[str] = []
        self._lock = asyncio.Lock()

    def scrub(self, text: str) -> str:
        """Mask configured secrets in a piece of text."""
        for secret in self.redact:
            text = text.replace(secret, "***")
        return text

    def write(self, message: str) -> str:
        """
        Buffer a timestamped line.

        Args:
            message: Line content without timestamp

        Returns:
            The line as it will be persisted
        """
        line = f"[{timestamp()}] {self.scrub(message)}"
        self._pending.append(line)
        return line

    @property
    def pending(self) -> int:
        """Number of buffered lines not yet persisted."""
        return len(self._pending)

    async def flush(self) -> int:
        """
        Persist all buffered lines.

        Returns:
            Number of lines persisted
        """
        async with self._lock:
            if not self._pending:
                return 0
            batch, self._pending = self._pending, []
            try:
                await self.store.append_logs(self.challenge_id, batch)
            except Exception:
                # Put the batch back in front so a later flush retries it in order
                self._pending = batch + self._pending
                raise
            return len(batch)

    async def periodic_flush(self, interval: float, stop: asyncio.Event) -> None:
        """
        Flush every ``interval`` seconds until ``stop`` is set.

        The loop is stopped through the event rather than by cancellation so
        that a flush already in progress always completes.
        """
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                return
            try:
                await self.flush()
            except Exception as e:
                logger.warning(f"Periodic log flush failed for {self.challenge_id}: {e}")


class NullLogSink(DeploymentLogSink):
    """Sink that discards lines on flush, for commands outside a deployment."""

    def __init__(self, redact: Sequence[str] = ()):
        self.store = None
        self.challenge_id = None
        self.redact = [secret for secret in redact if secret]
        self._pending = []
        self._lock = asyncio.Lock()

    async def flush(self) -> int:
        flushed = len(self._pending)
        self._pending = []
        return flushed


