"""Filesystem helpers for dotlink."""

from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path, PureWindowsPath

from .errors import AttributeUpdateError
from .models import EntryType

logger = logging.getLogger(__name__)

FILE_ATTRIBUTE_HIDDEN = 0x2
FILE_ATTRIBUTE_SYSTEM = 0x4
INVALID_FILE_ATTRIBUTES = 0xFFFFFFFF

_WINDOWS_RESERVED_CHARS = frozenset('<>:"|?*')


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def path_exists(path: Path) -> bool:
    """Return ``True`` for any entry at ``path``, dangling symlinks included."""

    return path.exists() or path.is_symlink()


def detect_entry_type(path: Path) -> EntryType:
    """Determine the ``EntryType`` for ``path`` without following a final link."""

    if path.is_symlink():
        return EntryType.SYMLINK
    if path.is_dir():
        return EntryType.DIRECTORY
    return EntryType.FILE


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if ``source`` symlink resolves to ``target``.

    Links layered on further links are followed to the end of the chain.
    """

    if not source.is_symlink():
        return False
    current = Path(os.readlink(source))
    current_resolved = (source.parent / current).resolve(strict=False)
    target_resolved = target.resolve(strict=False)
    return current_resolved == target_resolved


def read_link_target(path: Path) -> Path:
    """Return the fully resolved destination of symlink ``path``."""

    return (path.parent / Path(os.readlink(path))).resolve(strict=False)


def create_symlink(source: Path, target: Path) -> None:
    """Create ``source`` as a symlink to ``target``.

    Existing entries are never replaced; ``FileExistsError`` propagates.
    """

    ensure_parent(source)
    is_directory = target.is_dir()
    try:
        relative_target = os.path.relpath(target, start=source.parent)
        source.symlink_to(relative_target, target_is_directory=is_directory)
    except ValueError:
        source.symlink_to(target, target_is_directory=is_directory)


def remove_symlink(path: Path) -> None:
    """Delete the symlink at ``path`` without touching what it points to."""

    if not path.is_symlink():
        raise ValueError(f"'{path}' is not a symlink")
    if sys.platform == "win32" and path.is_dir():
        # Directory links on Windows are directory entries, not files.
        os.rmdir(path)
        return
    path.unlink()


def set_hidden_attributes(path: Path) -> None:
    """Mark the link at ``path`` hidden (and system, where that exists)."""

    if sys.platform == "win32":
        _set_windows_attributes(path)
    elif hasattr(os, "lchflags") and hasattr(stat, "UF_HIDDEN"):
        try:
            flags = path.lstat().st_flags
            os.lchflags(path, flags | stat.UF_HIDDEN)
        except OSError as exc:
            raise AttributeUpdateError(exc.errno, f"Unable to update hidden flag: {exc.strerror}", str(path)) from exc
    else:
        logger.debug("Hidden attributes are not supported on this platform; leaving '%s' as is", path)


def _set_windows_attributes(path: Path) -> None:
    import ctypes

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)  # type: ignore[attr-defined]
    current = kernel32.GetFileAttributesW(str(path))
    if current == INVALID_FILE_ATTRIBUTES:
        error = ctypes.get_last_error()  # type: ignore[attr-defined]
        raise AttributeUpdateError(error, "Unable to read file attributes", str(path))

    updated = current | FILE_ATTRIBUTE_HIDDEN | FILE_ATTRIBUTE_SYSTEM
    if not kernel32.SetFileAttributesW(str(path), updated):
        error = ctypes.get_last_error()  # type: ignore[attr-defined]
        raise AttributeUpdateError(error, "Unable to set file attributes", str(path))


def is_valid_path(path: Path | str, *, windows: bool | None = None) -> bool:
    """Return ``True`` if ``path`` is syntactically well formed.

    Only the text is checked; the path does not need to exist.
    """

    text = str(path)
    if not text or "\0" in text:
        return False

    if windows is None:
        windows = sys.platform == "win32"
    if not windows:
        return True

    pure = PureWindowsPath(text)
    parts = pure.parts[1:] if pure.anchor else pure.parts
    for part in parts:
        if any(char in _WINDOWS_RESERVED_CHARS or ord(char) < 32 for char in part):
            return False
    return True
