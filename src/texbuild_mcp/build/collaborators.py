"""Collaborators reached by the orchestrator.

Each collaborator is a narrow protocol; the defaults here are what the MCP
server wires in. Tests substitute mocks.
"""

from __future__ import annotations

import logging
import os
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)
build_log = logging.getLogger("texbuild_mcp.build.log")

# Buffer limits
MAX_LOG_LINES: int = 2000
MAX_OUTPUT_CHUNKS: int = 10_000

# Status icons and colors
ICON_SPIN = "sync~spin"
ICON_ERROR = "x"
ICON_SUCCESS = "check"
COLOR_DEFAULT = "statusBar.foreground"
COLOR_ERROR = "errorForeground"


class BuildLoggerProtocol(Protocol):
    def add_log_message(self, message: str) -> None: ...

    def add_compiler_message(self, message: str) -> None: ...

    def clear_compiler_messages(self) -> None: ...

    def display_status(
        self,
        icon: str,
        color: str,
        message: str | None = None,
        severity: str = "info",
    ) -> None: ...


class ParserProtocol(Protocol):
    def parse(self, log: str) -> None: ...


class CleanerProtocol(Protocol):
    async def clean(self, root_file: str) -> None: ...


class ViewerProtocol(Protocol):
    def refresh(self, root_file: str) -> None: ...


class SaverProtocol(Protocol):
    async def save_all(self) -> None: ...


@dataclass
class BuildStatus:
    """Last status shown to the user."""

    icon: str
    color: str
    message: str | None = None
    severity: str = "info"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "icon": self.icon,
            "color": self.color,
            "severity": self.severity,
        }
        if self.message:
            result["message"] = self.message
        return result


class BuildLogger:
    """Log and compiler-output display backed by bounded buffers."""

    def __init__(self, max_log_lines: int = MAX_LOG_LINES):
        self._log: deque[str] = deque(maxlen=max_log_lines)
        self._output: deque[str] = deque(maxlen=MAX_OUTPUT_CHUNKS)
        self._status = BuildStatus(icon=ICON_SUCCESS, color=COLOR_DEFAULT)

    @property
    def status(self) -> BuildStatus:
        return self._status

    def add_log_message(self, message: str) -> None:
        """Record a log line."""
        build_log.info(message)
        self._log.append(f"[{time.strftime('%H:%M:%S')}] {message}")

    def add_compiler_message(self, message: str) -> None:
        """Record raw compiler output as it arrives."""
        self._output.append(message)

    def clear_compiler_messages(self) -> None:
        """Drop the compiler output of previous steps."""
        self._output.clear()

    def display_status(
        self,
        icon: str,
        color: str,
        message: str | None = None,
        severity: str = "info",
    ) -> None:
        """Show a status entry."""
        self._status = BuildStatus(icon=icon, color=color, message=message, severity=severity)
        if message:
            level = {"error": logging.ERROR, "warning": logging.WARNING}.get(
                severity, logging.INFO
            )
            build_log.log(level, message)

    def get_log(self, lines: int | None = None) -> list[str]:
        """Return the last log lines (all if lines is None)."""
        log = list(self._log)
        if lines is not None:
            return log[-lines:] if lines > 0 else []
        return log

    def get_output(self, clear: bool = False) -> str:
        """Return the compiler output captured since the last clear."""
        output = "".join(self._output)
        if clear:
            self._output.clear()
        return output


class CapturedOutputParser:
    """Keeps the step output it is handed for a diagnostics consumer."""

    def __init__(self, keep: int = 20):
        self._logs: deque[str] = deque(maxlen=keep)

    @property
    def last(self) -> str | None:
        return self._logs[-1] if self._logs else None

    @property
    def count(self) -> int:
        return len(self._logs)

    def parse(self, log: str) -> None:
        self._logs.append(log)


class ArtifactViewer:
    """Records which document should be shown after a successful build."""

    def __init__(self) -> None:
        self._last_root_file: str | None = None
        self._refresh_count = 0
        self._listeners: list[Callable[[str], None]] = []

    @property
    def last_root_file(self) -> str | None:
        return self._last_root_file

    @property
    def refresh_count(self) -> int:
        return self._refresh_count

    @property
    def pdf_path(self) -> str | None:
        """PDF produced for the last refreshed document."""
        if self._last_root_file is None:
            return None
        return os.path.splitext(self._last_root_file)[0] + ".pdf"

    def on_refresh(self, listener: Callable[[str], None]) -> None:
        """Register refresh listener."""
        self._listeners.append(listener)

    def refresh(self, root_file: str) -> None:
        """Refresh the view of root_file."""
        self._last_root_file = root_file
        self._refresh_count += 1
        logger.info(f"Refresh viewer for {root_file}")
        for listener in self._listeners:
            try:
                listener(root_file)
            except Exception:
                logger.exception("Viewer listener error")


class NullSaver:
    """No unsaved documents exist outside an editor."""

    async def save_all(self) -> None:
        return None
