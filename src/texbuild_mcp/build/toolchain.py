"""Toolchain resolution - template validation and argument expansion.

A toolchain is configured as an ordered list of templates::

    [{"command": "latexmk", "args": ["-pdf", "%DOC%"]}]

Resolution turns the templates into concrete steps for one root file:
- Shape validation (string "command", list-of-strings "args")
- Macro substitution (%DOC%, %DOCFILE%, %DIR%)
- Program override from the document's magic comment
"""

from __future__ import annotations

import copy
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Final

from .magic import DEFAULT_PROGRAM, find_program_magic
from .state import ToolchainError

# Make-like driver that selects its engine through an extra flag
LATEXMK_COMMAND: Final[str] = "latexmk"

MISSING_COMMAND_MESSAGE: Final[str] = (
    'LaTeX toolchain is invalid. Each tool in the toolchain must have a "command" string.'
)
INVALID_ARGS_MESSAGE: Final[str] = (
    'LaTeX toolchain is invalid. "args" must be an array of strings.'
)


@dataclass(frozen=True)
class ToolchainStep:
    """One resolved toolchain command.

    An empty command stands for the program named by the magic comment.
    """

    command: str
    args: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"command": self.command, "args": list(self.args)}


def validate_templates(templates: Any) -> None:
    """Check the shape of every configured template.

    Args:
        templates: Raw toolchain configuration

    Raises:
        ToolchainError: If any template is malformed
    """
    if not isinstance(templates, (list, tuple)):
        raise ToolchainError("LaTeX toolchain is invalid. The toolchain must be an array.")

    for template in templates:
        if not isinstance(template, dict) or not isinstance(template.get("command"), str):
            raise ToolchainError(MISSING_COMMAND_MESSAGE)
        if "args" not in template:
            continue
        args = template["args"]
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ToolchainError(INVALID_ARGS_MESSAGE)


def _forward_slashes(path: str, pathmod: ModuleType) -> str:
    return "/".join(path.split(pathmod.sep))


def substitute_macros(arg: str, root_file: str, pathmod: ModuleType = os.path) -> str:
    """Expand the document placeholders in one argument.

    Args:
        arg: Argument template
        root_file: Root document path
        pathmod: Path flavour of root_file (os.path, ntpath or posixpath)

    Returns:
        Argument with %DOC%, %DOCFILE% and %DIR% replaced
    """
    doc = pathmod.splitext(root_file)[0]
    docfile = pathmod.splitext(pathmod.basename(root_file))[0]
    directory = pathmod.dirname(root_file)

    return (
        arg.replace("%DOC%", _forward_slashes(doc, pathmod))
        .replace("%DOCFILE%", _forward_slashes(docfile, pathmod))
        .replace("%DIR%", _forward_slashes(directory, pathmod))
    )


def resolve_toolchain(
    root_file: str,
    templates: Sequence[dict[str, Any]],
    program: str | None = None,
    pathmod: ModuleType = os.path,
    log: Callable[[str], None] | None = None,
) -> list[ToolchainStep]:
    """Build the concrete toolchain for a root file.

    The configured templates are deep-copied; the caller's configuration is
    never modified.

    Args:
        root_file: Root document path
        templates: Configured toolchain templates
        program: Detected program (read from the magic comment if None)
        pathmod: Path flavour of root_file
        log: Optional sink for the magic comment message

    Returns:
        Resolved steps in order

    Raises:
        ToolchainError: If a template is malformed
        OSError: If program is None and the root file cannot be read
    """
    commands = copy.deepcopy(templates)
    validate_templates(commands)

    if program is None:
        program = find_program_magic(root_file, log=log)

    steps: list[ToolchainStep] = []
    for template in commands:
        command: str = template["command"]
        args = [substitute_macros(a, root_file, pathmod) for a in template.get("args", [])]

        if program != DEFAULT_PROGRAM:
            if command == "":
                command = program
            elif command == LATEXMK_COMMAND:
                args.append(f"-pdflatex={program}")

        steps.append(ToolchainStep(command=command, args=tuple(args)))

    return steps
