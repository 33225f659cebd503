"""Relative-path containment checks for writes inside a working directory.

``is_path_safe`` is a pure string computation: it never touches the
filesystem and does not follow symlinks.  Callers must run it, and get
True, before creating or writing anything under the base directory.
"""

from __future__ import annotations

import ntpath
import os
from pathlib import Path

from codebox.errors import UnsafePathError


def _looks_absolute(relative_path: str) -> bool:
    # Rooted POSIX and Windows spellings are rejected on every host OS
    if relative_path.startswith(("/", "\\")):
        return True
    drive, rest = ntpath.splitdrive(relative_path)
    if not drive:
        return False
    # Off Windows "a:b.txt" is a plain file name, but a rooted drive is not
    return os.name == "nt" or rest.startswith(("/", "\\"))


def is_path_safe(base_dir: str | Path, relative_path: str) -> bool:
    """Return True if *relative_path* stays inside *base_dir*.

    The joined path is normalised (``.``/``..`` collapsed, trailing
    separators dropped) and accepted only when it equals *base_dir* or is a
    strict descendant of it.  Absolute inputs and NUL bytes are rejected.
    """
    if "\x00" in relative_path or _looks_absolute(relative_path):
        return False

    base = os.path.normpath(os.path.abspath(os.fspath(base_dir)))
    # Treat backslashes as separators too so "a\\..\\..\\x" cannot slip through
    candidate = relative_path.replace("\\", "/") if os.sep == "/" else relative_path
    full = os.path.normpath(os.path.join(base, candidate))

    if full == base:
        return True
    prefix = base if base.endswith(os.sep) else base + os.sep
    return full.startswith(prefix)


def resolve_within(base_dir: str | Path, relative_path: str) -> Path:
    """Join *relative_path* onto *base_dir* after checking containment.

    Raises UnsafePathError when the path escapes.
    """
    if not is_path_safe(base_dir, relative_path):
        raise UnsafePathError(relative_path)
    return Path(os.path.normpath(os.path.join(os.fspath(base_dir), relative_path)))


def ensure_parent_directory(full_path: str | Path) -> None:
    """Create any missing ancestors of *full_path* (idempotent)."""
    Path(full_path).parent.mkdir(parents=True, exist_ok=True)


def validate_directory(dir_path: str | Path) -> Path:
    """Return *dir_path* as a Path if it exists and is a directory."""
    p = Path(dir_path)
    if not p.exists():
        raise FileNotFoundError(f"Directory not found: {p}")
    if not p.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {p}")
    return p

