"""Common IO helpers for plugins."""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

SAFE_FILENAME_CHARS = {"-", "_", "."}


def secure_filename(filename: str, *, fallback: str = "upload") -> str:
    """Sanitize filenames so they are safe to join under a storage root."""

    if not filename:
        return fallback
    filename = os.path.basename(filename.replace("\\", "/"))
    name, ext = os.path.splitext(filename)
    safe_name = "".join(
        ch if ch.isalnum() or ch in SAFE_FILENAME_CHARS else "_" for ch in name
    )
    safe_ext = "".join(ch for ch in ext if ch.isalnum() or ch in SAFE_FILENAME_CHARS)
    safe_name = safe_name.strip("._") or fallback
    safe_ext = safe_ext.strip("._")
    return f"{safe_name}{f'.{safe_ext}' if safe_ext else ''}"


@contextmanager
def atomic_writer(target: Path) -> Iterator[IO[bytes]]:
    """Yield a binary handle whose content replaces ``target`` on success.

    Readers never observe a partially written file: data goes to a sibling
    temporary file that is renamed over the target once the block exits
    cleanly. On error the temporary file is removed and the target is left
    untouched.
    """

    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def write_bytes_atomic(target: Path, data: bytes) -> Path:
    with atomic_writer(target) as handle:
        handle.write(data)
    return target


__all__ = [
    "atomic_writer",
    "secure_filename",
    "write_bytes_atomic",
]
