"""Magic comment detection for the compiler program.

A root file may declare its engine on a line of its own::

    % !TEX program = xelatex
    %!TEX TS-program=lualatex
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_PROGRAM: Final[str] = "pdflatex"

PROGRAM_MAGIC_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"%\s*!\s*T[Ee]X\s(?:TS-)?program\s*=\s*(?P<program>\S*)\r?$",
    re.MULTILINE,
)


def find_program_in_text(content: str) -> str | None:
    """Return the program named by the first magic comment, if any.

    Args:
        content: Raw document text

    Returns:
        Program token, or None when no (non-empty) directive exists
    """
    match = PROGRAM_MAGIC_PATTERN.search(content)
    if match is None or not match.group("program"):
        return None
    return match.group("program")


def find_program_magic(
    root_file: str,
    default: str = DEFAULT_PROGRAM,
    log: Callable[[str], None] | None = None,
) -> str:
    """Detect the compiler program of a root file.

    Args:
        root_file: Path to the document
        default: Program used when the document carries no directive
        log: Optional sink that also receives the "found" message

    Returns:
        Program name

    Raises:
        OSError: If the document cannot be read
    """
    with open(root_file, encoding="utf-8", errors="replace") as f:
        content = f.read()

    program = find_program_in_text(content)
    if program is None:
        return default

    message = f"Found program by magic comment: {program}"
    logger.info(message)
    if log is not None:
        log(message)
    return program
