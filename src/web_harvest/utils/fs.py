"""
Filesystem helpers.

Every on-disk write in the package goes through a temp file in the
destination directory followed by os.replace, so readers never observe
a half-written file.
"""

import os
import re
import tempfile
from pathlib import Path

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def atomic_write_bytes(path: Path | str, data: bytes) -> Path:
    """
    Write bytes to path atomically.

    Args:
        path: Destination file
        data: Content to write

    Returns:
        The destination path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    return path


def atomic_write_text(path: Path | str, text: str, encoding: str = "utf-8") -> Path:
    """Write text to path atomically (see atomic_write_bytes)."""
    return atomic_write_bytes(path, text.encode(encoding))


def safe_filename(name: str, default: str = "file", max_length: int = 120) -> str:
    """
    Reduce a name to the characters [A-Za-z0-9._-].

    Runs of other characters collapse to a single underscore. Leading
    dots are removed so the result is never a hidden file.

    Args:
        name: Raw name (e.g. last URL path segment)
        default: Returned when nothing usable remains
        max_length: Maximum length of the result

    Returns:
        Sanitized file name
    """
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("_").lstrip(".")
    if len(cleaned) > max_length:
        stem, dot, ext = cleaned.rpartition(".")
        if dot and len(ext) <= 10:
            cleaned = stem[: max_length - len(ext) - 1] + "." + ext
        else:
            cleaned = cleaned[:max_length]
    return cleaned or default


def unique_path(path: Path, reserved: set[Path] | None = None) -> Path:
    """
    Resolve a name collision by appending -1, -2, ... to the stem.

    Args:
        path: Desired path
        reserved: Paths already claimed by in-flight writes

    Returns:
        A path that neither exists on disk nor is reserved
    """
    reserved = reserved or set()
    candidate = path
    counter = 1

    while candidate.exists() or candidate in reserved:
        candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
        counter += 1

    return candidate
