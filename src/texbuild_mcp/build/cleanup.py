"""Auxiliary file cleanup for build operations.

The actual cleaning is delegated to an external command (by default
``latexmk -c %DOC%``) run in the root file's directory. Cleanup never fails
the caller: errors are logged and the clean completes.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from ..settings import default_clean_command
from .state import StepOutcomeKind
from .supervisor import OutputSink, ProcessSupervisor
from .toolchain import substitute_macros

logger = logging.getLogger(__name__)


class CommandCleaner:
    """Runs the configured clean command."""

    def __init__(
        self,
        command_provider: Callable[[], list[str]] | None = None,
        on_output: OutputSink | None = None,
    ):
        """Initialize cleaner.

        Args:
            command_provider: Returns the clean command (program + args)
            on_output: Sink for the clean command's output
        """
        self._command_provider = command_provider or default_clean_command
        self._supervisor = ProcessSupervisor(on_output=on_output)
        self._clean_count = 0

    @property
    def clean_count(self) -> int:
        """Number of completed clean() calls."""
        return self._clean_count

    async def clean(self, root_file: str) -> None:
        """Clean auxiliary files of root_file.

        Args:
            root_file: Root document path
        """
        try:
            command = [substitute_macros(a, root_file) for a in self._command_provider()]
            if not command or not command[0]:
                logger.info("No clean command configured, skipping clean")
                return

            logger.info(f"Cleaning auxiliary files: {' '.join(command)}")
            outcome = await self._supervisor.run(
                command[0], command[1:], cwd=os.path.dirname(root_file) or None
            )
            if outcome.kind == StepOutcomeKind.FATAL:
                logger.warning(f"Clean command could not start: {outcome.error}")
            elif not outcome.success:
                logger.warning(
                    f"Clean command returned {outcome.exit_code}/{outcome.signal}"
                )
        except Exception as e:
            logger.warning(f"Cleanup failed: {e}")
        finally:
            self._clean_count += 1
