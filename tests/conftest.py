"""Pytest fixtures for texbuild-mcp tests."""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from texbuild_mcp.build.state import StepOutcome, StepOutcomeKind  # noqa: E402

FATAL = "fatal"


class ScriptedSupervisor:
    """Stands in for ProcessSupervisor with scripted exit codes.

    Each run() consumes the next entry of the script: an exit code, or
    FATAL for a spawn failure. With block=True a run waits until release()
    or kill() is called.
    """

    def __init__(self, script=None, block=False):
        self.calls: list[tuple[str, list[str], str | None]] = []
        self.kill_count = 0
        self.block = block
        self._script = list(script or [])
        self._running = False
        self._killed = False
        self._gate: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, command, args, cwd=None):
        self.calls.append((command, list(args), cwd))
        code = self._script.pop(0) if self._script else 0
        if code == FATAL:
            return StepOutcome(
                kind=StepOutcomeKind.FATAL,
                command=command,
                args=list(args),
                error="No such file or directory",
            )

        self._running = True
        self._killed = False
        try:
            if self.block:
                self._gate = asyncio.Event()
                await self._gate.wait()
            if self._killed:
                return StepOutcome(
                    kind=StepOutcomeKind.FAILURE,
                    command=command,
                    args=list(args),
                    stdout=f"{command} killed\n",
                    signal="SIGKILL",
                )
            return StepOutcome(
                kind=StepOutcomeKind.SUCCESS if code == 0 else StepOutcomeKind.FAILURE,
                command=command,
                args=list(args),
                stdout=f"{command} output\n",
                exit_code=code,
            )
        finally:
            self._running = False

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    def kill(self) -> bool:
        if not self._running:
            return False
        self.kill_count += 1
        self._killed = True
        self.release()
        return True


async def spin_until(predicate, steps: int = 200) -> None:
    """Yield to the event loop until predicate() holds."""
    for _ in range(steps):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def tex_document(tmp_path):
    """Root document without magic comment."""
    path = tmp_path / "main.tex"
    path.write_text(
        "\\documentclass{article}\n\\begin{document}\nHello\n\\end{document}\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def other_document(tmp_path):
    """Second root document in its own directory."""
    directory = tmp_path / "other"
    directory.mkdir()
    path = directory / "paper.tex"
    path.write_text("\\documentclass{article}\n", encoding="utf-8")
    return str(path)


@pytest.fixture
def two_step_toolchain():
    """pdflatex followed by bibtex."""
    return [
        {"command": "pdflatex", "args": ["-interaction=nonstopmode", "%DOC%"]},
        {"command": "bibtex", "args": ["%DOCFILE%"]},
    ]


@pytest.fixture
def collaborators():
    """Mocked logger, parser, cleaner, viewer and saver."""
    cleaner = MagicMock()
    cleaner.clean = AsyncMock()
    saver = MagicMock()
    saver.save_all = AsyncMock()
    return {
        "build_logger": MagicMock(),
        "parser": MagicMock(),
        "cleaner": cleaner,
        "viewer": MagicMock(),
        "saver": saver,
    }


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch):
    """Keep environment overrides out of every test."""
    for name in ("TEXBUILD_CLEAN_ENABLED", "TEXBUILD_CLEAN_AND_RETRY", "TEXBUILD_SETTINGS"):
        monkeypatch.delenv(name, raising=False)
