"""Build orchestration for LaTeX toolchains.

Provides editor-like build-on-demand functionality with:
- Configurable multi-step toolchains with %DOC%/%DOCFILE%/%DIR% macros
- Program selection through `% !TEX program = ...` magic comments
- One supervised process at a time with live output forwarding
- Preemption: a newer build request kills and replaces the running one
- One-shot clean-and-retry after a failed step
"""

from .cleanup import CommandCleaner
from .collaborators import ArtifactViewer, BuildLogger, CapturedOutputParser, NullSaver
from .magic import DEFAULT_PROGRAM, find_program_in_text, find_program_magic
from .orchestrator import BuildOrchestrator
from .session import BuildRequest, BuildSession
from .state import (
    BuildError,
    BuildResult,
    BuildState,
    StepOutcome,
    StepOutcomeKind,
    ToolchainError,
)
from .supervisor import ProcessSupervisor
from .toolchain import ToolchainStep, resolve_toolchain, substitute_macros, validate_templates

__all__ = [
    "BuildOrchestrator",
    "BuildRequest",
    "BuildSession",
    "BuildState",
    "BuildResult",
    "BuildError",
    "ToolchainError",
    "StepOutcome",
    "StepOutcomeKind",
    "ProcessSupervisor",
    "ToolchainStep",
    "resolve_toolchain",
    "substitute_macros",
    "validate_templates",
    "DEFAULT_PROGRAM",
    "find_program_in_text",
    "find_program_magic",
    "CommandCleaner",
    "BuildLogger",
    "CapturedOutputParser",
    "ArtifactViewer",
    "NullSaver",
]
