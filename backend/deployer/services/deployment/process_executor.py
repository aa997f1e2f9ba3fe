"""
Asynchronous external command execution with streamed logging.

Handles:
- Argument-vector and shell invocations
- Streaming stdout/stderr into a deployment log sink as output arrives
- Periodic and final log flushes
- Timeout enforcement and process group kill
"""
import asyncio
import codecs
import logging
import os
import shlex
import signal
from typing import List, Optional, Sequence, Union

from deployer.core.config import settings
from deployer.core.exceptions import CommandError, CommandTimeoutError
from deployer.services.deployment.log_sink import DeploymentLogSink, NullLogSink

logger = logging.getLogger(__name__)

Command = Union[Sequence[str], str]

# Bytes read from a pipe per iteration
READ_CHUNK_SIZE = 4096
# Seconds to keep draining pipes after a timed-out child was killed
KILL_GRACE_PERIOD = 5
CR = "\r"


class ProcessExecutor:
    """
    Runs external commands without blocking the event loop.

    Argument vectors go through ``create_subprocess_exec`` and must be used
    whenever any argument comes from user or database input. A plain string
    is run through the shell and is reserved for compound commands built
    from quoted operands.
    """

    def __init__(
        self,
        default_timeout: Optional[float] = None,
        flush_interval: Optional[float] = None,
    ):
        """
        Initialize the executor.

        Args:
            default_timeout: Seconds before a command is killed (default from settings)
            flush_interval: Seconds between periodic log flushes (default from settings)
        """
        self.default_timeout = default_timeout or settings.COMMAND_TIMEOUT
        self.flush_interval = flush_interval or settings.LOG_FLUSH_INTERVAL

    @staticmethod
    def describe(command: Command) -> str:
        """Human-readable form of a command for application logs."""
        if isinstance(command, str):
            return command
        return shlex.join(command)

    async def _spawn(self, command: Command, cwd: Optional[str]) -> asyncio.subprocess.Process:
        # The child leads its own process group so a kill also reaches whatever it forked
        options = dict(
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        if isinstance(command, str):
            return await asyncio.create_subprocess_shell(command, **options)
        return await asyncio.create_subprocess_exec(*command, **options)

    @staticmethod
    async def _pump(
        stream: asyncio.StreamReader,
        tag: str,
        sink: DeploymentLogSink,
        captured: List[str],
    ) -> None:
        """Forward every complete line of a pipe to the sink as it arrives."""
        # One decoder per stream keeps multibyte characters split across reads intact
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        partial = ""
        eof = False
        while not eof:
            chunk = await stream.read(READ_CHUNK_SIZE)
            eof = not chunk
            text = decoder.decode(chunk, final=eof)
            captured.append(text)
            partial += text
            *complete, partial = partial.split("\n")
            for line in complete:
                sink.write(f"[{tag}] {line.rstrip(CR)}")
        if partial:
            sink.write(f"[{tag}] {partial.rstrip(CR)}")

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        """SIGKILL the child's whole process group."""
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            elif process.returncode is None:
                process.kill()
        except ProcessLookupError:
            pass

    async def run(
        self,
        command: Command,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        sink: Optional[DeploymentLogSink] = None,
        label: str = "",
    ) -> str:
        """
        Run a command to completion.

        Every line the child writes before exiting is flushed to the sink
        before this coroutine returns or raises.

        Args:
            command: Argument vector, or a shell string
            cwd: Working directory
            timeout: Seconds before the child is killed
            sink: Log sink receiving output lines
            label: Short description used in log lines and errors

        Returns:
            Captured stdout with trailing whitespace removed

        Raises:
            CommandTimeoutError: If the timeout expired
            CommandError: If the command exited non-zero or could not start
        """
        sink = sink if sink is not None else NullLogSink()
        timeout = timeout or self.default_timeout
        label = label or self.describe(command).split(" ", 1)[0]

        logger.debug(f"Running command: {sink.scrub(self.describe(command))} (cwd: {cwd})")
        sink.write(f"[INFO] {label}")

        try:
            process = await self._spawn(command, cwd)
        except OSError as e:
            sink.write(f"[ERROR] {label}: {e}")
            await sink.flush()
            raise CommandError(label, -1, sink.scrub(str(e)))

        stdout_parts: List[str] = []
        stderr_parts: List[str] = []
        readers = asyncio.gather(
            self._pump(process.stdout, "STDOUT", sink, stdout_parts),
            self._pump(process.stderr, "STDERR", sink, stderr_parts),
        )
        stop_flushing = asyncio.Event()
        flusher = asyncio.create_task(sink.periodic_flush(self.flush_interval, stop_flushing))

        timed_out = False
        try:
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                timed_out = True
                logger.error(f"Command timed out after {timeout}s: {label}")
                self._kill(process)
            if timed_out:
                # A descendant that escaped the group may keep the pipes open
                try:
                    await asyncio.wait_for(
                        asyncio.gather(process.wait(), asyncio.shield(readers)),
                        timeout=KILL_GRACE_PERIOD,
                    )
                except asyncio.TimeoutError:
                    logger.warning(f"Output of {label} still open {KILL_GRACE_PERIOD}s after kill")
                    readers.cancel()
            else:
                await readers
        except asyncio.CancelledError:
            self._kill(process)
            readers.cancel()
            raise
        finally:
            stop_flushing.set()
            await flusher

        stdout = "".join(stdout_parts)
        stderr = sink.scrub("".join(stderr_parts))

        if timed_out:
            sink.write(f"[ERROR] {label}: timed out after {timeout} seconds")
            await sink.flush()
            raise CommandTimeoutError(label, timeout)

        if process.returncode != 0:
            sink.write(f"[ERROR] {label} failed with code {process.returncode}")
            await sink.flush()
            raise CommandError(label, process.returncode, stderr)

        sink.write(f"[SUCCESS] {label}")
        await sink.flush()
        return stdout.rstrip()
