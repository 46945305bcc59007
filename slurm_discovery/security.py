"""Validation of external command paths before they are executed."""

from __future__ import annotations

import os
import shutil
import stat

from .exceptions import CommandValidationError

_DANGEROUS_CHARS = (";", "|", "&", "$", "`", ">", "<", "(", ")", "{", "}", "[", "]", "\\", "\n", "\r")

ALLOWED_COMMANDS: dict[str, tuple[str, ...]] = {
    "slurm": ("scontrol", "squeue", "scancel", "sinfo", "sacct"),
}


def validate_command_path(cmd_path: str) -> str:
    """Return the absolute path of *cmd_path* or raise CommandValidationError.

    Absolute paths must point at an executable regular file; bare names are
    looked up on ``PATH``.
    """
    if not cmd_path:
        raise CommandValidationError("command path cannot be empty")

    if ".." in cmd_path:
        raise CommandValidationError(f"command path contains path traversal: {cmd_path}")

    for char in _DANGEROUS_CHARS:
        if char in cmd_path:
            raise CommandValidationError(f"command path contains dangerous character {char!r}: {cmd_path}")

    if os.path.isabs(cmd_path):
        try:
            info = os.stat(cmd_path)
        except OSError as exc:
            raise CommandValidationError(f"command path does not exist: {cmd_path}") from exc
        if not stat.S_ISREG(info.st_mode):
            raise CommandValidationError(f"command path is not a regular file: {cmd_path}")
        if not info.st_mode & 0o111:
            raise CommandValidationError(f"command path is not executable: {cmd_path}")
        return cmd_path

    resolved = shutil.which(cmd_path)
    if resolved is None:
        raise CommandValidationError(f"command not found in PATH: {cmd_path}")
    return resolved


def is_allowed_command(cmd_path: str, category: str) -> bool:
    allowed = ALLOWED_COMMANDS.get(category)
    if not allowed:
        return False
    return os.path.basename(cmd_path) in allowed


def validate_and_resolve_command(cmd_path: str, category: str = "") -> str:
    """Validate *cmd_path* and, when *category* is given, check it against the allow-list."""
    abs_path = validate_command_path(cmd_path)
    if category and not is_allowed_command(abs_path, category):
        raise CommandValidationError(
            f"command {os.path.basename(abs_path)!r} is not allowed for category {category!r}"
        )
    return abs_path
