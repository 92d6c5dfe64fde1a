"""Process supervision for toolchain steps.

Runs one external process at a time, streams its output and reports a
StepOutcome instead of raising:
- SUCCESS: exit code 0
- FAILURE: any other exit code, or terminated by a signal
- FATAL: the process could not be spawned
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
from collections.abc import Callable, Sequence

from .state import StepOutcome, StepOutcomeKind

logger = logging.getLogger(__name__)

# Bytes requested per read; chunks are forwarded as soon as they arrive
READ_CHUNK_SIZE: int = 4096

# Seconds a reader waits for data before checking for a kill request
READ_POLL_INTERVAL: float = 0.5

OutputSink = Callable[[str], None]


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class ProcessSupervisor:
    """Owns at most one child process at a time."""

    def __init__(self, on_output: OutputSink | None = None):
        """Initialize supervisor.

        Args:
            on_output: Sink receiving every decoded stdout/stderr chunk
        """
        self._on_output = on_output
        self._process: asyncio.subprocess.Process | None = None
        self._running = False
        self._kill_requested = False

    @property
    def is_running(self) -> bool:
        """Whether a process is spawned or being spawned."""
        return self._running

    @property
    def pid(self) -> int | None:
        """PID of the current process, if any."""
        if self._process is None:
            return None
        return self._process.pid

    def _forward(self, text: str) -> None:
        if not text or self._on_output is None:
            return
        try:
            self._on_output(text)
        except Exception:
            logger.exception("Output sink error")

    async def _read_stream(
        self,
        stream: asyncio.StreamReader | None,
        chunks: list[str],
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                data = await asyncio.wait_for(
                    stream.read(READ_CHUNK_SIZE), timeout=READ_POLL_INTERVAL
                )
            except asyncio.TimeoutError:
                # A killed step's pipes may be held open by surviving grandchildren
                if self._kill_requested:
                    break
                continue
            if not data:
                break
            text = decoder.decode(data)
            if text:
                chunks.append(text)
                self._forward(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            chunks.append(tail)
            self._forward(tail)

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | None = None,
    ) -> StepOutcome:
        """Run one command to completion.

        Args:
            command: Executable name or path
            args: Arguments (passed verbatim, no shell)
            cwd: Working directory

        Returns:
            Outcome of the process

        Raises:
            RuntimeError: If this supervisor already owns a process
        """
        if self._running:
            raise RuntimeError("ProcessSupervisor already owns a running process")

        self._running = True
        self._kill_requested = False
        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []

        try:
            try:
                self._process = await asyncio.create_subprocess_exec(
                    command,
                    *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=cwd,
                    start_new_session=True,
                )
            except OSError as e:
                logger.warning(f"Failed to spawn {command}: {e}")
                return StepOutcome(
                    kind=StepOutcomeKind.FATAL,
                    command=command,
                    args=list(args),
                    stderr="".join(stderr_chunks),
                    error=e.strerror or str(e),
                )

            if self._kill_requested:
                self._terminate()

            await asyncio.gather(
                self._read_stream(self._process.stdout, stdout_chunks),
                self._read_stream(self._process.stderr, stderr_chunks),
            )
            returncode = await self._process.wait()

            exit_code: int | None = returncode
            signal_name: str | None = None
            if returncode is not None and returncode < 0:
                exit_code = None
                signal_name = _signal_name(returncode)

            kind = StepOutcomeKind.SUCCESS if exit_code == 0 else StepOutcomeKind.FAILURE
            return StepOutcome(
                kind=kind,
                command=command,
                args=list(args),
                stdout="".join(stdout_chunks),
                stderr="".join(stderr_chunks),
                exit_code=exit_code,
                signal=signal_name,
            )
        finally:
            self._process = None
            self._running = False

    def _terminate(self) -> bool:
        process = self._process
        if process is None or process.returncode is not None:
            return False
        try:
            if os.name == "posix":
                # The step leads its own session; take its children down with it
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except (ProcessLookupError, PermissionError) as e:
            logger.warning(f"Failed to kill PID {process.pid}: {e}")
            return False
        return True

    def kill(self) -> bool:
        """Kill the current process.

        The kill surfaces as a FAILURE outcome from run(). On POSIX the whole
        process group of the step is killed, so tools started by a driver
        such as latexmk go down with it. A kill issued while the process is
        still being spawned is applied once it exists.

        Returns:
            True if a process was running
        """
        if not self._running:
            return False
        self._kill_requested = True
        if self._process is not None:
            self._terminate()
        return True
