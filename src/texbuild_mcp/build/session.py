"""Per-build mutable state.

A BuildRequest lives for the preprocessing of one build() call; a
BuildSession lives from toolchain resolution until the session ends
(success, failure, or superseded by a pending rebuild).
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field

from ..settings import BuildSettings
from .toolchain import ToolchainStep


@dataclass
class BuildRequest:
    """One call of the build entry point."""

    root_file: str
    settings: BuildSettings
    suppress_build_on_save: bool = False


@dataclass
class BuildSession:
    """State of the running build."""

    root_file: str
    settings: BuildSettings
    toolchain: list[ToolchainStep] = field(default_factory=list)
    step_index: int = 0
    steps_run: int = 0
    disable_clean_and_retry: bool = False
    cancelled: bool = False
    pending_rebuild_target: str | None = None
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def cwd(self) -> str:
        """Working directory for every step."""
        return os.path.dirname(self.root_file)

    @property
    def finished(self) -> bool:
        """Whether every step has run."""
        return self.step_index >= len(self.toolchain)

    @property
    def superseded(self) -> bool:
        """Whether a newer build request is waiting."""
        return self.pending_rebuild_target is not None

    @property
    def current_step(self) -> ToolchainStep:
        return self.toolchain[self.step_index]

    def restart(self) -> None:
        """Go back to the first step with the same resolved toolchain."""
        self.step_index = 0

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000
