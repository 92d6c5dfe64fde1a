"""Build settings.

Settings come from a JSON file using LaTeX Workshop style keys::

    {
        "latex.toolchain": [{"command": "latexmk", "args": ["-pdf", "%DOC%"]}],
        "latex.clean.enabled": false,
        "latex.autoBuild.cleanAndRetry.enabled": true
    }

Environment variables override the boolean switches. A build captures one
immutable BuildSettings snapshot when it starts and uses it throughout.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final

logger = logging.getLogger(__name__)

TOOLCHAIN_KEY: Final[str] = "latex.toolchain"
CLEAN_ENABLED_KEY: Final[str] = "latex.clean.enabled"
CLEAN_AND_RETRY_KEY: Final[str] = "latex.autoBuild.cleanAndRetry.enabled"
BUILD_ON_SAVE_KEY: Final[str] = "latex.autoBuild.onSave.enabled"
CLEAN_COMMAND_KEY: Final[str] = "latex.clean.command"

ENV_CLEAN_ENABLED: Final[str] = "TEXBUILD_CLEAN_ENABLED"
ENV_CLEAN_AND_RETRY: Final[str] = "TEXBUILD_CLEAN_AND_RETRY"
ENV_SETTINGS_PATH: Final[str] = "TEXBUILD_SETTINGS"

TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})


def default_toolchain() -> list[dict[str, Any]]:
    """Toolchain used when none is configured."""
    return [
        {
            "command": "latexmk",
            "args": ["-synctex=1", "-interaction=nonstopmode", "-file-line-error", "-pdf", "%DOC%"],
        }
    ]


def default_clean_command() -> list[str]:
    return ["latexmk", "-c", "%DOC%"]


class SettingsError(ValueError):
    """Settings file cannot be used."""


@dataclass(frozen=True)
class BuildSettings:
    """Immutable settings snapshot for one build."""

    toolchain: list[dict[str, Any]] = field(default_factory=default_toolchain)
    clean_enabled: bool = False
    clean_and_retry_enabled: bool = True
    auto_build_on_save: bool = False
    clean_command: list[str] = field(default_factory=default_clean_command)

    @property
    def retry_allowed(self) -> bool:
        """Settings half of the clean-and-retry precondition."""
        return self.clean_and_retry_enabled and not self.clean_enabled

    def copy(self) -> BuildSettings:
        """Deep copy, so a snapshot never shares templates with its source."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the settings file format."""
        return {
            TOOLCHAIN_KEY: copy.deepcopy(self.toolchain),
            CLEAN_ENABLED_KEY: self.clean_enabled,
            CLEAN_AND_RETRY_KEY: self.clean_and_retry_enabled,
            BUILD_ON_SAVE_KEY: self.auto_build_on_save,
            CLEAN_COMMAND_KEY: list(self.clean_command),
        }


def _env_flag(name: str, current: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return current
    return value.strip().lower() in TRUE_VALUES


def _bool_setting(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise SettingsError(f'"{key}" must be true or false, got {value!r}')
    return value


def settings_from_dict(data: dict[str, Any]) -> BuildSettings:
    """Create settings from a parsed settings file.

    The toolchain is kept as raw data; its shape is checked when a build
    resolves it.
    """
    defaults = BuildSettings()
    clean_command = data.get(CLEAN_COMMAND_KEY, defaults.clean_command)
    if not isinstance(clean_command, list) or not all(isinstance(a, str) for a in clean_command):
        raise SettingsError(f'"{CLEAN_COMMAND_KEY}" must be an array of strings')

    return BuildSettings(
        toolchain=copy.deepcopy(data.get(TOOLCHAIN_KEY, defaults.toolchain)),
        clean_enabled=_bool_setting(data, CLEAN_ENABLED_KEY, defaults.clean_enabled),
        clean_and_retry_enabled=_bool_setting(
            data, CLEAN_AND_RETRY_KEY, defaults.clean_and_retry_enabled
        ),
        auto_build_on_save=_bool_setting(data, BUILD_ON_SAVE_KEY, defaults.auto_build_on_save),
        clean_command=list(clean_command),
    )


class SettingsStore:
    """Reads settings on demand.

    The file is re-read on every snapshot() so edits apply to the next build.
    """

    def __init__(self, path: str | Path | None = None, overrides: BuildSettings | None = None):
        """Initialize store.

        Args:
            path: JSON settings file (may not exist)
            overrides: Fixed settings used instead of a file
        """
        self._path = Path(path) if path is not None else None
        self._overrides = overrides

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> BuildSettings:
        if self._overrides is not None:
            return self._overrides.copy()
        if self._path is None or not self._path.exists():
            return BuildSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise SettingsError(f"Cannot read settings file {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise SettingsError(f"Settings file {self._path} must contain an object")
        return settings_from_dict(data)

    def snapshot(self) -> BuildSettings:
        """Capture the current settings.

        Raises:
            SettingsError: If the settings file is malformed
        """
        settings = self._load()
        clean_enabled = _env_flag(ENV_CLEAN_ENABLED, settings.clean_enabled)
        clean_and_retry = _env_flag(ENV_CLEAN_AND_RETRY, settings.clean_and_retry_enabled)
        if (clean_enabled, clean_and_retry) != (
            settings.clean_enabled,
            settings.clean_and_retry_enabled,
        ):
            logger.debug(
                f"Settings overridden by environment: clean={clean_enabled}, "
                f"cleanAndRetry={clean_and_retry}"
            )
            settings = replace(
                settings, clean_enabled=clean_enabled, clean_and_retry_enabled=clean_and_retry
            )
        return settings

    def update(self, settings: BuildSettings) -> None:
        """Replace the fixed settings used by later snapshots."""
        self._overrides = settings.copy()
