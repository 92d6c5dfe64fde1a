"""MCP Server for LaTeX toolchain builds."""

from __future__ import annotations

import json
import logging
import os

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .build import ArtifactViewer, BuildLogger, BuildOrchestrator, resolve_toolchain
from .settings import SettingsStore

logger = logging.getLogger(__name__)

# Global orchestrator (single client mode)
_orchestrator: BuildOrchestrator | None = None
_project_path: str | None = None


def get_orchestrator(settings_path: str | None = None) -> BuildOrchestrator:
    """Get or create the build orchestrator.

    Note: Single client mode - one build session at a time.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = BuildOrchestrator(
            SettingsStore(settings_path),
            build_logger=BuildLogger(),
            viewer=ArtifactViewer(),
        )
    return _orchestrator


def reset_orchestrator() -> None:
    """Forget the global orchestrator."""
    global _orchestrator
    _orchestrator = None


def validate_root_file(path: str, project_path: str | None = None) -> str:
    """Validate a root file is an existing file within project scope.

    Args:
        path: Absolute path, or path relative to the project root
        project_path: Project root constraining all builds

    Returns:
        Absolute path

    Raises:
        ValueError: If path is outside project scope or does not exist
    """
    if project_path and not os.path.isabs(path):
        path = os.path.join(project_path, path)
    abs_path = os.path.abspath(path)

    if project_path:
        root = os.path.abspath(project_path)
        try:
            if os.path.commonpath([abs_path, root]) != root:
                raise ValueError(f"Path outside project scope: {path}")
        except ValueError as e:
            # Different drives on Windows or other path issues
            raise ValueError(f"Path outside project scope: {path}") from e

    if not os.path.isfile(abs_path):
        raise ValueError(f"Root file does not exist: {path}")
    return abs_path


def create_server(project_path: str | None = None, settings_path: str | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        project_path: Root path of the LaTeX project.
            All builds are constrained to this path.
        settings_path: JSON settings file with the toolchain configuration
    """
    global _project_path
    _project_path = os.path.abspath(project_path) if project_path else None
    mcp = FastMCP("texbuild-mcp")
    orchestrator = get_orchestrator(settings_path)

    async def notify_state_changed(ctx: Context) -> None:
        """Notify client that build://state resource has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl("build://state"))
        except Exception:
            pass  # Notification failure shouldn't break the tool

    # ============== Build Tools ==============

    @mcp.tool()
    async def build_document(ctx: Context, root_file: str, wait: bool = True) -> dict:
        """
        Build a LaTeX document with the configured toolchain.

        Runs every toolchain step (e.g. latexmk, or pdflatex + bibtex + pdflatex)
        in the document's directory. A `% !TEX program = xelatex` comment at the
        top of the root file selects the engine.

        If a build is already running it is killed and replaced by this one;
        only the latest request is built.

        Args:
            root_file: Path to the root .tex file (relative to the project root)
            wait: Wait for the build to finish (default True). With False the
                build runs in the background; poll get_build_state.
        """
        try:
            validated = validate_root_file(root_file, _project_path)
            await orchestrator.build(validated)
            await notify_state_changed(ctx)
            if not wait:
                return {"success": True, "data": orchestrator.to_dict()}

            result = await orchestrator.wait()
            await notify_state_changed(ctx)
            if result is None:
                return {"success": False, "error": "Build did not start"}
            return {
                "success": result.success,
                "data": result.to_dict(),
                "summary": result.to_summary(),
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def kill_build(ctx: Context) -> dict:
        """Kill the running build.

        The build is reported as failed; no clean-and-retry follows.
        """
        try:
            killed = await orchestrator.kill()
            await notify_state_changed(ctx)
            return {"success": True, "data": {"killed": killed}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_state() -> dict:
        """
        Get the current build state.

        Returns the state machine state, the document being built, the last
        status message and the result of the last finished build.
        """
        try:
            return {"success": True, "data": orchestrator.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_log(lines: int = 50) -> dict:
        """Get the last N lines of the build log.

        The log lists each toolchain step, its exit status, retries and kills.

        Args:
            lines: Number of lines to return (default 50)
        """
        try:
            log = orchestrator.build_logger.get_log(lines)
            return {"success": True, "data": {"lines": log}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_compiler_output(clear: bool = False) -> dict:
        """Get the raw compiler output of the current or last toolchain step.

        IMPORTANT: The user cannot see this output directly.
        Read it and summarize LaTeX errors and warnings for the user.
        """
        try:
            output = orchestrator.build_logger.get_output(clear)
            return {"success": True, "data": {"output": output}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def resolve_build_toolchain(root_file: str) -> dict:
        """Show the concrete commands a build of root_file would run.

        Args:
            root_file: Path to the root .tex file (relative to the project root)
        """
        try:
            validated = validate_root_file(root_file, _project_path)
            settings = orchestrator.settings.snapshot()
            steps = resolve_toolchain(validated, settings.toolchain)
            return {"success": True, "data": {"steps": [s.to_dict() for s in steps]}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Resources ==============

    @mcp.resource("build://state", mime_type="application/json")
    async def build_state_resource() -> str:
        """Current build state (JSON).

        Contains: state, root file, pending rebuild, status, last result.
        Updates when: a build starts, retries, finishes or is superseded.
        """
        return json.dumps(orchestrator.to_dict(), indent=2)

    @mcp.resource("build://log", mime_type="text/plain")
    async def build_log_resource() -> str:
        """Build log (plain text)."""
        return "\n".join(orchestrator.build_logger.get_log())

    @mcp.resource("build://output", mime_type="text/plain")
    async def build_output_resource() -> str:
        """Compiler output of the current or last step (plain text)."""
        return orchestrator.build_logger.get_output()

    @mcp.resource("build://artifact", mime_type="application/json")
    async def build_artifact_resource() -> str:
        """Document refreshed by the last successful build (JSON)."""
        viewer = orchestrator.viewer
        return json.dumps(
            {
                "rootFile": getattr(viewer, "last_root_file", None),
                "pdf": getattr(viewer, "pdf_path", None),
            },
            indent=2,
        )

    logger.info("TeXBuild MCP Server initialized")
    return mcp
