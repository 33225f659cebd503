"""Single-file reads and writes inside a working directory.

Every entry point validates the relative path with the path guard before
touching the filesystem.
"""

from __future__ import annotations

from pathlib import Path

from codebox.errors import FileWriteError
from codebox.path_guard import ensure_parent_directory, resolve_within
from codebox.types import WriteMode


def write_project_file(
    base_dir: str | Path,
    file_path: str,
    content: str,
    mode: WriteMode = "overwrite",
) -> Path:
    """Write (or append) UTF-8 *content* to *file_path* under *base_dir*.

    Raises:
        UnsafePathError: *file_path* escapes *base_dir*; nothing is written.
        FileWriteError: the directory or file could not be written, or
            *content* cannot be encoded as UTF-8.
    """
    full_path = resolve_within(base_dir, file_path)
    try:
        # Encode first so an unencodable payload never truncates the target
        data = content.encode("utf-8")
        ensure_parent_directory(full_path)
        with open(full_path, "ab" if mode == "append" else "wb") as f:
            f.write(data)
    except (OSError, UnicodeError) as exc:
        raise FileWriteError(f"Failed to write {file_path}: {exc}") from exc
    return full_path


def read_project_file(base_dir: str | Path, file_path: str) -> str:
    """Read a UTF-8 file under *base_dir*.

    Raises UnsafePathError for escaping paths and FileNotFoundError when the
    file does not exist.
    """
    full_path = resolve_within(base_dir, file_path)
    if not full_path.is_file():
        raise FileNotFoundError(f"File not found: {file_path}")
    return full_path.read_text(encoding="utf-8")

