"""Build state management and result types.

State machine for a build session:
IDLE → PREPROCESSING → RUNNING → RUNNING | RETRYING | SUCCEEDED | FAILED | SUPERSEDED
  ↑_______________________________________________________________________|
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BuildState(str, Enum):
    """Build orchestrator state machine states."""

    IDLE = "idle"
    PREPROCESSING = "preprocessing"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SUPERSEDED = "superseded"


class StepOutcomeKind(str, Enum):
    """How a single toolchain step ended."""

    SUCCESS = "success"
    FAILURE = "failure"  # process ran, non-zero or undefined exit
    FATAL = "fatal"  # process could not be spawned


@dataclass
class StepOutcome:
    """Terminal outcome of one supervised process."""

    kind: StepOutcomeKind
    command: str
    args: list[str] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    signal: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.kind == StepOutcomeKind.SUCCESS

    @property
    def fatal(self) -> bool:
        return self.kind == StepOutcomeKind.FATAL

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "command": self.command,
            "args": list(self.args),
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.signal:
            result["signal"] = self.signal
        if self.error:
            result["error"] = self.error
        return result


class BuildError(Exception):
    """Build operation error."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"error": str(self)}
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        return result


class ToolchainError(BuildError):
    """Configured toolchain has an invalid shape."""


@dataclass
class BuildResult:
    """Result of one build session."""

    root_file: str
    state: BuildState
    steps_run: int = 0
    retried: bool = False
    superseded: bool = False
    outcome: StepOutcome | None = None
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == BuildState.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": self.success,
            "state": self.state.value,
            "rootFile": self.root_file,
            "stepsRun": self.steps_run,
            "retried": self.retried,
            "durationMs": round(self.duration_ms, 2),
        }
        if self.superseded:
            result["superseded"] = True
        if self.outcome is not None:
            result["outcome"] = self.outcome.to_dict()
        if self.error:
            result["error"] = self.error
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        status = "[OK] Build succeeded" if self.success else "[FAILED] Build failed"
        if self.superseded:
            status = "[SUPERSEDED] Build replaced by a newer request"

        parts = [
            status,
            f"  Root file: {self.root_file}",
            f"  Steps run: {self.steps_run}",
            f"  Duration: {self.duration_ms:.0f}ms",
        ]
        if self.retried:
            parts.append("  Retried after cleaning auxiliary files")
        if self.error:
            parts.append(f"  Error: {self.error}")
        elif self.outcome is not None and not self.outcome.success:
            code = self.outcome.exit_code if self.outcome.exit_code is not None else "-"
            parts.append(
                f"  Failed step: {self.outcome.command} (exit {code}"
                f"{', ' + self.outcome.signal if self.outcome.signal else ''})"
            )
        return "\n".join(parts)
