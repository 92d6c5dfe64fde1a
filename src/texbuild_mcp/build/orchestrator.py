"""Build orchestrator - the toolchain state machine.

State machine:
IDLE → PREPROCESSING → RUNNING → RUNNING | RETRYING | SUCCEEDED | FAILED | SUPERSEDED
  ↑_______________________________________________________________________|

Only one session runs at a time. A build request arriving while a session is
active kills its process and becomes the session's pending rebuild target;
when the killed step comes back, the session ends silently and a fresh
build() is started for the most recent target.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import Any

from ..settings import SettingsError, SettingsStore
from .cleanup import CommandCleaner
from .collaborators import (
    COLOR_DEFAULT,
    COLOR_ERROR,
    ICON_ERROR,
    ICON_SPIN,
    ICON_SUCCESS,
    ArtifactViewer,
    BuildLogger,
    BuildLoggerProtocol,
    CapturedOutputParser,
    CleanerProtocol,
    NullSaver,
    ParserProtocol,
    SaverProtocol,
    ViewerProtocol,
)
from .session import BuildRequest, BuildSession
from .state import BuildResult, BuildState, StepOutcome, ToolchainError
from .supervisor import ProcessSupervisor
from .toolchain import resolve_toolchain

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """Drives toolchain steps for one document at a time.

    Usage:
        orchestrator = BuildOrchestrator(SettingsStore("settings.json"))
        await orchestrator.build("/path/to/main.tex")
        result = await orchestrator.wait()
    """

    def __init__(
        self,
        settings: SettingsStore | None = None,
        *,
        build_logger: BuildLoggerProtocol | None = None,
        parser: ParserProtocol | None = None,
        cleaner: CleanerProtocol | None = None,
        viewer: ViewerProtocol | None = None,
        saver: SaverProtocol | None = None,
        supervisor: ProcessSupervisor | None = None,
    ):
        """Initialize orchestrator.

        Args:
            settings: Settings source, snapshotted once per build
            build_logger: Log/status display
            parser: Receives the stdout of every completed step
            cleaner: Removes auxiliary files
            viewer: Refreshed after a successful build
            saver: Flushes unsaved documents before a build
            supervisor: Runs the toolchain processes
        """
        self._settings = settings or SettingsStore()
        self._logger: BuildLoggerProtocol = build_logger or BuildLogger()
        self._parser: ParserProtocol = parser or CapturedOutputParser()
        self._viewer: ViewerProtocol = viewer or ArtifactViewer()
        self._saver: SaverProtocol = saver or NullSaver()
        self._supervisor = supervisor or ProcessSupervisor(
            on_output=self._logger.add_compiler_message
        )
        self._cleaner: CleanerProtocol = cleaner or CommandCleaner(
            self._clean_command,
            on_output=self._logger.add_compiler_message,
        )

        self._state = BuildState.IDLE
        self._session: BuildSession | None = None
        self._task: asyncio.Task[None] | None = None
        self._flushing: list[BuildRequest] = []
        self._last_result: BuildResult | None = None
        self._state_listeners: list[Callable[[BuildState], None]] = []

    @property
    def state(self) -> BuildState:
        """Current state."""
        return self._state

    @property
    def is_building(self) -> bool:
        """Whether a session is active."""
        return self._session is not None

    @property
    def is_saving(self) -> bool:
        """Whether a build request is flushing unsaved documents."""
        return any(r.suppress_build_on_save for r in self._flushing)

    @property
    def last_result(self) -> BuildResult | None:
        """Result of the last finished session."""
        return self._last_result

    @property
    def current_root_file(self) -> str | None:
        """Root file of the active session."""
        return self._session.root_file if self._session else None

    @property
    def settings(self) -> SettingsStore:
        return self._settings

    @property
    def build_logger(self) -> BuildLoggerProtocol:
        return self._logger

    @property
    def viewer(self) -> ViewerProtocol:
        return self._viewer

    def _clean_command(self) -> list[str]:
        """Clean command of the active session's settings snapshot."""
        if self._session is not None:
            return list(self._session.settings.clean_command)
        return self._settings.snapshot().clean_command

    def on_state_change(self, listener: Callable[[BuildState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _set_state(self, new_state: BuildState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.debug(f"Build state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    # ============== Entry points ==============

    async def build(self, root_file: str) -> None:
        """Request a build of root_file.

        Returns once the request is either running or queued behind the
        active session. Use wait() for the outcome.
        """
        root_file = os.path.abspath(root_file)
        try:
            settings = self._settings.snapshot()
        except SettingsError as e:
            self._logger.add_log_message(f"Cannot read settings: {e}")
            self._logger.display_status(
                ICON_ERROR, COLOR_ERROR, f"LaTeX toolchain settings are invalid: {e}", "error"
            )
            if self._session is None:
                self._last_result = BuildResult(
                    root_file=root_file, state=BuildState.FAILED, error=str(e)
                )
                self._set_state(BuildState.FAILED)
                self._set_state(BuildState.IDLE)
            return

        request = BuildRequest(root_file=root_file, settings=settings)
        self._logger.display_status(ICON_SPIN, COLOR_DEFAULT)
        self._logger.add_log_message(f"Build root file {root_file}")
        if self._session is None:
            self._set_state(BuildState.PREPROCESSING)

        await self._flush(request)

        session = self._session
        if session is not None:
            self._supervisor.kill()
            self._logger.add_log_message("Kill previous process")
            session.pending_rebuild_target = root_file
            return

        self._start(request)

    async def kill(self) -> bool:
        """Kill the running build.

        The session ends FAILED without a clean-and-retry. A pending
        rebuild, if any, still starts.

        Returns:
            True if a build was active
        """
        session = self._session
        if session is None:
            return False
        session.cancelled = True
        if self._supervisor.kill():
            self._logger.add_log_message("Kill current process")
        return True

    async def wait(self) -> BuildResult | None:
        """Wait until no session is active, following rebuild chains."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._last_result

    async def on_document_saved(self, path: str) -> bool:
        """Auto-build hook for saved documents.

        Saves made by a build's own flush do not trigger another build.

        Returns:
            True if a build was requested
        """
        if self.is_saving:
            logger.debug(f"Ignoring save of {path} during build preprocessing")
            return False
        try:
            settings = self._settings.snapshot()
        except SettingsError as e:
            logger.warning(f"Cannot read settings: {e}")
            return False
        if not settings.auto_build_on_save:
            return False
        await self.build(path)
        return True

    # ============== Preprocessing ==============

    async def _flush(self, request: BuildRequest) -> None:
        request.suppress_build_on_save = True
        self._flushing.append(request)
        try:
            await self._saver.save_all()
        except Exception as e:
            logger.warning(f"Saving documents failed: {e}")
            self._logger.add_log_message(f"Saving documents failed: {e}")
        finally:
            request.suppress_build_on_save = False
            self._flushing.remove(request)

    def _start(self, request: BuildRequest) -> None:
        session = BuildSession(root_file=request.root_file, settings=request.settings)
        try:
            session.toolchain = resolve_toolchain(
                session.root_file,
                session.settings.toolchain,
                log=self._logger.add_log_message,
            )
        except (ToolchainError, OSError) as e:
            message = str(e)
            if isinstance(e, OSError):
                message = f"Cannot read root file {session.root_file}: {e.strerror or e}"
            self._logger.add_log_message("Invalid toolchain.")
            self._logger.display_status(ICON_ERROR, COLOR_ERROR, message, "error")
            self._report(session, BuildState.FAILED, error=message)
            self._set_state(BuildState.IDLE)
            return

        self._session = session
        self._set_state(BuildState.RUNNING)
        self._task = asyncio.create_task(self._drive(session))

    # ============== Step driver ==============

    async def _drive(self, session: BuildSession) -> None:
        try:
            await self._run_steps(session)
        except Exception as e:
            logger.exception("Build session crashed")
            self._logger.display_status(
                ICON_ERROR, COLOR_ERROR, f"LaTeX toolchain crashed: {e}", "error"
            )
            self._report(session, BuildState.FAILED, error=f"Build failed: {e}")
        finally:
            if self._session is session:
                self._session = None

        if session.pending_rebuild_target is not None:
            await self.build(session.pending_rebuild_target)
        elif self._session is None:
            self._set_state(BuildState.IDLE)

    async def _run_steps(self, session: BuildSession) -> None:
        while True:
            if session.superseded:
                self._supersede(session)
                return

            if session.cancelled:
                self._cancel(session)
                return

            if session.finished:
                await self._build_finished(session)
                return

            index = session.step_index
            step = session.current_step
            self._logger.clear_compiler_messages()
            self._logger.add_log_message(
                f"Toolchain step {index + 1}: {step.command}, {', '.join(step.args)}"
            )
            outcome = await self._supervisor.run(step.command, step.args, cwd=session.cwd)
            session.steps_run += 1

            if outcome.fatal:
                if session.superseded:
                    self._supersede(session)
                    return
                self._logger.add_log_message(
                    f"LaTeX fatal error: {outcome.error}, {outcome.stderr}. "
                    "Does the executable exist?"
                )
                self._logger.display_status(
                    ICON_SPIN,
                    COLOR_ERROR,
                    f"LaTeX toolchain terminated with fatal error: {outcome.error}.",
                    "error",
                )
                self._report(session, BuildState.FAILED, outcome=outcome)
                return

            self._parse(outcome)

            if session.superseded:
                self._supersede(session)
                return

            if outcome.success:
                session.step_index += 1
                continue

            self._logger.add_log_message(
                f"Toolchain returns with error: {outcome.exit_code}/{outcome.signal}."
            )
            if session.cancelled:
                self._cancel(session, outcome)
                return

            if not session.disable_clean_and_retry and session.settings.retry_allowed:
                self._logger.display_status(
                    ICON_ERROR,
                    COLOR_ERROR,
                    "LaTeX toolchain terminated with error. Retry building the project.",
                    "warning",
                )
                self._logger.add_log_message(
                    "Cleaning auxiliary files and retrying build after toolchain error."
                )
                session.disable_clean_and_retry = True
                self._set_state(BuildState.RETRYING)
                await self._cleaner.clean(session.root_file)
                session.restart()
                if not session.superseded and not session.cancelled:
                    self._set_state(BuildState.RUNNING)
                continue

            self._logger.display_status(
                ICON_ERROR, COLOR_ERROR, "LaTeX toolchain terminated with error.", "error"
            )
            self._report(session, BuildState.FAILED, outcome=outcome)
            return

    def _parse(self, outcome: StepOutcome) -> None:
        try:
            self._parser.parse(outcome.stdout)
        except Exception:
            logger.exception("Log parser error")

    async def _build_finished(self, session: BuildSession) -> None:
        root_file = session.root_file
        self._logger.add_log_message(f"Toolchain of length {len(session.toolchain)} finished.")
        self._logger.add_log_message(f"Successfully built {root_file}")
        self._logger.display_status(ICON_SUCCESS, COLOR_DEFAULT, "LaTeX toolchain succeeded.")
        try:
            self._viewer.refresh(root_file)
        except Exception:
            logger.exception("Viewer refresh error")
        if session.settings.clean_enabled:
            await self._cleaner.clean(root_file)
        self._report(session, BuildState.SUCCEEDED)

    def _cancel(self, session: BuildSession, outcome: StepOutcome | None = None) -> None:
        self._logger.display_status(
            ICON_ERROR, COLOR_ERROR, "LaTeX toolchain killed.", "error"
        )
        self._report(session, BuildState.FAILED, outcome=outcome, error="Build killed")

    def _supersede(self, session: BuildSession) -> None:
        logger.info(
            f"Build of {session.root_file} superseded by {session.pending_rebuild_target}"
        )
        self._report(session, BuildState.SUPERSEDED, superseded=True)

    def _report(
        self,
        session: BuildSession,
        state: BuildState,
        outcome: StepOutcome | None = None,
        error: str | None = None,
        superseded: bool = False,
    ) -> None:
        result = BuildResult(
            root_file=session.root_file,
            state=state,
            steps_run=session.steps_run,
            retried=session.disable_clean_and_retry,
            superseded=superseded,
            outcome=outcome,
            error=error,
            duration_ms=session.elapsed_ms(),
        )
        self._last_result = result
        logger.info(result.to_summary())
        self._set_state(state)

    def to_dict(self) -> dict[str, Any]:
        """Get orchestrator status as dictionary."""
        status = getattr(self._logger, "status", None)
        return {
            "state": self._state.value,
            "building": self.is_building,
            "rootFile": self.current_root_file,
            "pendingRebuild": (
                self._session.pending_rebuild_target if self._session else None
            ),
            "status": status.to_dict() if status is not None else None,
            "lastResult": self._last_result.to_dict() if self._last_result else None,
        }
