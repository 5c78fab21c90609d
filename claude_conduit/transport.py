"""
SubprocessCLITransport: Subprocess management for one Claude CLI invocation.

Spawns the CLI, writes the prompt to stdin, and streams stdout as parsed
JSON records. stderr is drained in the background so the child never blocks
on a full pipe. disconnect() terminates and reaps the process and is safe to
call any number of times from any exit path.
"""

import asyncio
import json
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from claude_conduit.availability import CLIAvailabilityChecker
from claude_conduit.command import build_command_args, build_environment
from claude_conduit.config import Settings, get_settings
from claude_conduit.errors import (
    CancellationError,
    ParseError,
    TransportError,
)
from claude_conduit.options import ClaudeOptions

logger = logging.getLogger(__name__)

# Longest raw line kept on a ParseError, for diagnostics
MAX_RAW_SNIPPET = 2000
MAX_PROMPT_LOG = 200


class TransportState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


class SubprocessCLITransport:
    """
    Owns exactly one Claude CLI child process.

    Lifecycle: idle -> connecting -> streaming -> closed. Any failure moves
    straight to closed; closed is terminal.
    """

    def __init__(
        self,
        prompt: str,
        options: Optional[ClaudeOptions] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        settings: Optional[Settings] = None,
        availability_checker: Optional[CLIAvailabilityChecker] = None,
    ):
        """
        Initialize the transport.

        Args:
            prompt: Prompt text written to the CLI's stdin
            options: Resolved invocation options
            cancel_event: Setting this event aborts the invocation
            settings: Settings override (defaults to get_settings())
            availability_checker: Executable lookup override
        """
        self._prompt = prompt
        self._options = options or ClaudeOptions()
        self._cancel_event = cancel_event
        self._settings = settings or get_settings()
        self._availability_checker = availability_checker or CLIAvailabilityChecker(
            self._settings
        )

        self._state = TransportState.IDLE
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._stderr_chunks: List[bytes] = []
        self._stderr_size = 0
        self._deadline: Optional[float] = None
        self._disconnected = False

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def stderr(self) -> str:
        return b"".join(self._stderr_chunks).decode("utf-8", errors="replace")

    async def __aenter__(self) -> "SubprocessCLITransport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        """
        Start the CLI process and hand it the prompt.

        Raises:
            CLINotFoundError: If the executable cannot be located
            TransportError: If the process cannot be spawned, or writing the
                prompt outlasts the options timeout
            CancellationError: If the cancel event is already set
        """
        if self._state != TransportState.IDLE:
            raise TransportError(f"Cannot connect transport in state '{self._state.value}'")

        if self._cancel_event is not None and self._cancel_event.is_set():
            self._state = TransportState.CLOSED
            self._disconnected = True
            raise CancellationError()

        self._state = TransportState.CONNECTING
        cwd = self._options.cwd

        try:
            executable = self._availability_checker.find_cli(self._options.cli_path)
        except TransportError:
            self._state = TransportState.CLOSED
            self._disconnected = True
            raise

        command = [executable, *build_command_args(self._options)]
        logger.debug(f"[TRANSPORT] Executing: {' '.join(command)}")
        logger.debug(f"[TRANSPORT] CWD: {cwd}, timeout: {self._options.timeout}ms")
        logger.debug(f"[TRANSPORT] Prompt: {self._prompt[:MAX_PROMPT_LOG]!r}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=build_environment(self._options),
                cwd=cwd,
                limit=self._settings.transport.max_line_bytes,
            )
        except FileNotFoundError as e:
            self._state = TransportState.CLOSED
            self._disconnected = True
            # Could be command not found OR cwd not found
            if cwd and not Path(cwd).exists():
                raise TransportError(f"Working directory not found: {cwd}") from e
            raise TransportError(f"Command not found: {executable}", return_code=127) from e
        except OSError as e:
            self._state = TransportState.CLOSED
            self._disconnected = True
            raise TransportError(f"Failed to start Claude CLI: {e}") from e

        logger.debug(f"[TRANSPORT] Started Claude CLI (pid={self._process.pid})")

        if self._options.timeout:
            self._deadline = time.monotonic() + self._options.timeout / 1000

        self._stderr_task = asyncio.create_task(self._drain_stderr())
        self._state = TransportState.STREAMING
        await self._write_prompt()

    async def receive_messages(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield one parsed JSON record per non-blank stdout line.

        Ends when the CLI closes stdout and exits cleanly.

        Raises:
            ParseError: On a malformed or non-object line
            TransportError: On non-zero exit or timeout
            CancellationError: If the cancel event fires
        """
        if self._state != TransportState.STREAMING or self._process is None:
            raise TransportError(
                f"Cannot receive messages in state '{self._state.value}'"
            )

        stdout = self._process.stdout
        assert stdout is not None

        try:
            while True:
                record = await self._next_record(stdout)
                if record is None:
                    break
                yield record
            await self._check_exit()
        except asyncio.CancelledError:
            await self.disconnect()
            raise

    async def _next_record(
        self, stdout: asyncio.StreamReader
    ) -> Optional[Dict[str, Any]]:
        """Next JSON object from stdout, skipping blank lines; None at EOF."""
        while True:
            await self._check_cancelled()
            line = await self._read_line(stdout)
            if not line:
                return None

            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue

            try:
                record = json.loads(text)
            except json.JSONDecodeError as e:
                raise ParseError(
                    f"Malformed line in CLI output: {e}", raw=text[:MAX_RAW_SNIPPET]
                ) from e

            if not isinstance(record, dict):
                raise ParseError(
                    "CLI output line is not a JSON object", raw=text[:MAX_RAW_SNIPPET]
                )

            return record

    async def _check_exit(self) -> None:
        return_code = await self._wait_for_exit()
        if return_code != 0:
            stderr = self.stderr.strip()
            logger.warning(f"[TRANSPORT] Claude CLI exited with code {return_code}")
            raise TransportError(
                f"Claude CLI exited with code {return_code}"
                + (f": {stderr}" if stderr else ""),
                return_code=return_code,
                stderr=stderr,
            )

    async def disconnect(self) -> None:
        """Terminate and reap the process. Runs its body exactly once."""
        if self._disconnected:
            return
        self._disconnected = True
        self._state = TransportState.CLOSED

        process = self._process
        if process is not None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()

            if process.returncode is None:
                logger.debug(f"[TRANSPORT] Terminating Claude CLI (pid={process.pid})")
                self._signal(process, kill=False)
                try:
                    await asyncio.wait_for(
                        process.wait(),
                        timeout=self._settings.cli.terminate_grace_seconds,
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        f"[TRANSPORT] pid={process.pid} ignored SIGTERM, killing"
                    )
                    self._signal(process, kill=True)
                    await process.wait()
                except asyncio.CancelledError:
                    self._signal(process, kill=True)
                    raise

        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass

    async def _write_prompt(self) -> None:
        process = self._process
        assert process is not None and process.stdin is not None
        try:
            process.stdin.write(self._prompt.encode("utf-8"))
            await asyncio.wait_for(process.stdin.drain(), timeout=self._remaining_time())
        except (BrokenPipeError, ConnectionResetError) as e:
            # The process died before reading its input; the exit code
            # is reported by receive_messages()
            logger.debug(f"[TRANSPORT] Could not write prompt: {e}")
        except asyncio.TimeoutError:
            await self._fail_on_timeout()
        finally:
            if not process.stdin.is_closing():
                process.stdin.close()

    async def _read_line(self, stdout: asyncio.StreamReader) -> bytes:
        """Read one line, honoring the deadline and the cancel event."""
        remaining = self._remaining_time()

        try:
            if self._cancel_event is None:
                return await asyncio.wait_for(stdout.readline(), timeout=remaining)

            read_task = asyncio.ensure_future(stdout.readline())
            cancel_task = asyncio.ensure_future(self._cancel_event.wait())
            try:
                done, _ = await asyncio.wait(
                    {read_task, cancel_task},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                for task in (read_task, cancel_task):
                    if not task.done():
                        task.cancel()

            if read_task in done:
                return read_task.result()
            if cancel_task in done:
                await self._check_cancelled()
            raise asyncio.TimeoutError()

        except asyncio.TimeoutError:
            await self._fail_on_timeout()
        except ValueError as e:
            # StreamReader raises ValueError when a line exceeds the limit
            raise ParseError(
                f"CLI output line exceeds {self._settings.transport.max_line_bytes} bytes"
            ) from e

        return b""  # unreachable, _fail_on_timeout always raises

    async def _wait_for_exit(self) -> int:
        process = self._process
        assert process is not None
        try:
            return_code = await asyncio.wait_for(
                process.wait(), timeout=self._remaining_time()
            )
        except asyncio.TimeoutError:
            await self._fail_on_timeout()

        if self._stderr_task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=1.0)
            except asyncio.TimeoutError:
                pass

        return return_code

    async def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            logger.info("[TRANSPORT] Cancel requested, stopping Claude CLI")
            await self.disconnect()
            raise CancellationError()

    async def _fail_on_timeout(self) -> None:
        timeout_ms = self._options.timeout
        logger.warning(f"[TRANSPORT] Timeout ({timeout_ms}ms) exceeded, killing process")
        await self.disconnect()
        raise TransportError(
            f"Claude CLI timed out after {timeout_ms}ms",
            stderr=self.stderr.strip(),
            timed_out=True,
        )

    def _remaining_time(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    async def _drain_stderr(self) -> None:
        process = self._process
        if process is None or process.stderr is None:
            return
        limit = self._settings.transport.max_stderr_bytes

        while True:
            chunk = await process.stderr.read(8192)
            if not chunk:
                break
            if self._stderr_size < limit:
                kept = chunk[: limit - self._stderr_size]
                self._stderr_chunks.append(kept)
                self._stderr_size += len(kept)

    @staticmethod
    def _signal(process: asyncio.subprocess.Process, kill: bool) -> None:
        try:
            if kill:
                process.kill()
            else:
                process.terminate()
        except ProcessLookupError:
            pass
