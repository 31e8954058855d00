"""File system helpers."""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB")


def read_file(path: PathLike) -> bytes:
    """Whole contents of a file."""
    return Path(path).read_bytes()


def write_file(path: PathLike, data: bytes) -> None:
    """Create or truncate a file (mode 0644) and write data to it."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)


def file_exists(path: PathLike) -> bool:
    """True if the path exists (file or directory)."""
    try:
        os.stat(path)
    except (OSError, ValueError):
        return False
    return True


def create_dir(path: PathLike) -> None:
    """Create a directory and any missing parents."""
    os.makedirs(path, mode=0o755, exist_ok=True)


def remove_file(path: PathLike) -> None:
    """Remove a file or an empty directory."""
    if os.path.isdir(path) and not os.path.islink(path):
        os.rmdir(path)
    else:
        os.remove(path)


def remove_dir(path: PathLike) -> None:
    """Remove a path and everything below it; a missing path is not an error."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)


def file_size(path: PathLike) -> int:
    """Size of a file in bytes."""
    return os.stat(path).st_size


def format_file_size(size: int) -> str:
    """Human-readable size with binary units, e.g. '1.5 MB'."""
    if size < 0:
        return "0 B"
    unit = 1024
    if size < unit:
        return f"{size} B"
    divisor, exponent = unit, 0
    remaining = size // unit
    while remaining >= unit and exponent + 2 < len(_SIZE_UNITS):
        divisor *= unit
        exponent += 1
        remaining //= unit
    return f"{size / divisor:.1f} {_SIZE_UNITS[exponent + 1]}"


def _program_dir() -> str:
    if sys.argv and sys.argv[0]:
        return str(Path(sys.argv[0]).resolve().parent)
    return ""


def find_executable(name: str) -> str:
    """Look for a program in the working directory, the program's directory and PATH.

    Returns the full path of the first match, or the name unchanged.
    """
    extension = ""
    if sys.platform == "win32" and not name.lower().endswith(".exe"):
        extension = ".exe"

    search_paths: list[str] = []
    try:
        search_paths.append(os.getcwd())
    except OSError:
        pass
    search_paths.append(_program_dir())
    search_paths.extend(os.environ.get("PATH", "").split(os.pathsep))

    for directory in search_paths:
        if not directory:
            continue
        candidate = os.path.join(directory, name + extension)
        if file_exists(candidate):
            return candidate
    return name