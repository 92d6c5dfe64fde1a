"""Entry point for texbuild-mcp."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Iterator

from .build import BuildOrchestrator
from .server import create_server, get_orchestrator
from .settings import ENV_SETTINGS_PATH, SettingsStore


def find_project_root(root: str | Path | None = None) -> str:
    """Find LaTeX project root by walking up from CWD.

    Searches for project markers in this order:
    1. .latexmkrc / latexmkrc (latexmk configuration)
    2. .git (git root as fallback)

    Falls back to CWD if no marker is found.

    Args:
        root: If provided, constrains search to this directory and below.
              Search stops at this boundary.

    Returns:
        Absolute path to project root (falls back to CWD if no marker found)
    """
    current = Path.cwd().resolve()
    boundary = Path(root).resolve() if root is not None else None

    def ancestors() -> Iterator[Path]:
        """Yield current directory and ancestors up to boundary."""
        yield current
        if boundary is not None and current == boundary:
            return
        for parent in current.parents:
            yield parent
            if boundary is not None and parent == boundary:
                return

    for directory in ancestors():
        if (directory / ".latexmkrc").is_file() or (directory / "latexmkrc").is_file():
            return str(directory)

    for directory in ancestors():
        if (directory / ".git").exists():  # .git can be file (worktree) or dir
            return str(directory)

    return str(current)


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="TeXBuild MCP Server - Build LaTeX documents via MCP"
    )
    parser.add_argument(
        "--project",
        type=str,
        default=None,
        help="Project root path. All builds are constrained to this path.",
    )
    parser.add_argument(
        "--project-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect project from current working directory. "
        "Searches upward for .latexmkrc or .git markers. "
        "Cannot be used with --project.",
    )
    parser.add_argument(
        "--settings",
        type=str,
        default=os.environ.get(ENV_SETTINGS_PATH),
        help="JSON settings file with the toolchain configuration "
        f"(default: ${ENV_SETTINGS_PATH}).",
    )
    parser.add_argument(
        "--build",
        type=str,
        default=None,
        metavar="ROOT_FILE",
        help="Build ROOT_FILE once and exit instead of serving MCP over stdio.",
    )
    return parser.parse_args(argv)


async def build_once(root_file: str, settings_path: str | None) -> int:
    """Build one document and return the process exit status."""
    orchestrator = BuildOrchestrator(SettingsStore(settings_path))
    await orchestrator.build(root_file)
    result = await orchestrator.wait()
    if result is None:
        return 1
    print(result.to_summary())
    return 0 if result.success else 1


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args(argv)

    if args.build:
        return await build_once(args.build, args.settings)

    if args.project_from_cwd:
        if args.project is not None:
            logger.error("--project-from-cwd cannot be used with --project")
            return 1
        project_path = find_project_root()
        logger.info(f"Auto-detected project root: {project_path}")
    else:
        project_path = args.project or os.getcwd()

    logger.info(f"Starting TeXBuild MCP Server (project: {project_path})...")

    mcp = create_server(project_path, args.settings)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        orchestrator = get_orchestrator()
        if orchestrator.is_building:
            await orchestrator.kill()
        logger.info("Server stopped")
    return 0


def run() -> None:
    """Run the server."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
