"""File locking and atomic YAML helpers for the state directory."""

from __future__ import annotations

import os
from pathlib import Path
from typing import IO, Any, Optional

import yaml

if os.name == "nt":
    import msvcrt

    _WINDOWS_LOCK_BYTES = 1

    def _lock(handle: IO[str]) -> None:
        handle.seek(0)
        handle.truncate(_WINDOWS_LOCK_BYTES)
        handle.flush()
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, _WINDOWS_LOCK_BYTES)

    def _unlock(handle: IO[str]) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, _WINDOWS_LOCK_BYTES)

else:
    import fcntl

    def _lock(handle: IO[str]) -> None:
        fcntl.flock(handle, fcntl.LOCK_EX)

    def _unlock(handle: IO[str]) -> None:
        fcntl.flock(handle, fcntl.LOCK_UN)


class FileLock:
    """Exclusive advisory lock on a sidecar file; not re-entrant."""

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        self._handle: Optional[IO[str]] = None

    def __enter__(self) -> "FileLock":
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.lock_path.open("a+", encoding="utf-8")
        try:
            _lock(handle)
        except OSError:
            handle.close()
            raise
        self._handle = handle
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            _unlock(handle)
        finally:
            handle.close()


def load_yaml_with_error(path: Path, default: Any) -> tuple[Any, Optional[str]]:
    """Read a YAML file, returning `(data, error_message)`.

    Missing and empty files yield `(default, None)`.
    """
    if not path.exists():
        return default, None
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        return default, f"Unable to read {path.name}: {exc}"
    if raw is None:
        return default, None
    return raw, None


def atomic_write_yaml(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False, allow_unicode=True)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)
