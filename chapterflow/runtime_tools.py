"""Deterministic runtime executable resolution helpers.

Responsibilities:
- Resolve external executable paths with environment-override-first precedence.
- Keep subprocess callers independent from where PDF tools are installed.
"""

from __future__ import annotations

from collections.abc import Mapping
import os
import shutil


def _override_variable(command_name: str) -> str:
    """Return the environment variable that overrides one executable path."""

    normalized = "".join(
        character if character.isalnum() else "_" for character in command_name.upper()
    )
    return f"CHAPTERFLOW_{normalized}_PATH"


def resolve_executable(command_name: str, env: Mapping[str, str] | None = None) -> str:
    """Resolve an executable with explicit override first, then PATH.

    Resolution order:
    1. `CHAPTERFLOW_<TOOL>_PATH` environment variable when it names a file.
    2. System `PATH`.
    3. Raw command name (allowing subprocess to raise a native missing-binary error).
    """

    normalized = command_name.strip()
    if not normalized:
        return command_name

    source = os.environ if env is None else env
    override = source.get(_override_variable(normalized), "").strip()
    if override and os.path.isfile(override):
        return override

    resolved_path = shutil.which(normalized)
    if resolved_path is not None:
        return resolved_path

    return normalized
