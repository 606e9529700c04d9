from __future__ import annotations

import json
import os
import threading
from collections import deque
from pathlib import Path
from typing import Any, Callable, Generic, Optional, TypeVar

import yaml

from ..constants import SCHEMA_VERSION
from ..domain.models import Activity
from ..io_utils import FileLock, atomic_write_yaml
from ..utils import parse_iso
from .interfaces import ActivityRepository, CollectionRepository, ConfigRepository

T = TypeVar("T")


class _YamlCollectionRepo(Generic[T]):
    def __init__(
        self,
        path: Path,
        lock_path: Path,
        key: str,
        loader: Callable[[dict[str, Any]], T],
        dumper: Callable[[T], dict[str, Any]],
    ) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()
        self._key = key
        self._loader = loader
        self._dumper = dumper

    def _load(self) -> list[T]:
        if not self._path.exists():
            return []
        raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            return []
        items = raw.get(self._key, [])
        if not isinstance(items, list):
            return []
        return [self._loader(item) for item in items if isinstance(item, dict)]

    def _save(self, items: list[T]) -> None:
        payload = {"version": SCHEMA_VERSION, self._key: [self._dumper(item) for item in items]}
        atomic_write_yaml(self._path, payload)


class FileCollectionRepository(CollectionRepository[T]):
    """YAML-backed collection whose records expose `id` and `workspace_id`."""

    def __init__(
        self,
        path: Path,
        lock_path: Path,
        key: str,
        loader: Callable[[dict[str, Any]], T],
    ) -> None:
        self._repo = _YamlCollectionRepo[T](path, lock_path, key, loader=loader, dumper=lambda item: item.to_dict())  # type: ignore[attr-defined]

    def list(self, workspace_id: Optional[str] = None) -> list[T]:
        with self._repo._thread_lock:
            with self._repo._lock:
                items = self._repo._load()
        if workspace_id is None:
            return items
        return [item for item in items if getattr(item, "workspace_id", None) == workspace_id]

    def get(self, item_id: str) -> Optional[T]:
        for item in self.list():
            if getattr(item, "id") == item_id:
                return item
        return None

    def upsert(self, item: T) -> T:
        item_id = getattr(item, "id")
        with self._repo._thread_lock:
            with self._repo._lock:
                items = self._repo._load()
                for idx, existing in enumerate(items):
                    if getattr(existing, "id") == item_id:
                        items[idx] = item
                        break
                else:
                    items.append(item)
                self._repo._save(items)
        return item

    def delete(self, item_id: str) -> bool:
        with self._repo._thread_lock:
            with self._repo._lock:
                items = self._repo._load()
                keep = [item for item in items if getattr(item, "id") != item_id]
                if len(keep) == len(items):
                    return False
                self._repo._save(keep)
        return True

    def mutate(self, item_id: str, change: Callable[[T], Optional[T]]) -> Optional[T]:
        with self._repo._thread_lock:
            with self._repo._lock:
                items = self._repo._load()
                for idx, existing in enumerate(items):
                    if getattr(existing, "id") != item_id:
                        continue
                    updated = change(existing)
                    if updated is None:
                        return existing
                    items[idx] = updated
                    self._repo._save(items)
                    return updated
        return None

    def delete_where(self, predicate: Callable[[T], bool]) -> int:
        with self._repo._thread_lock:
            with self._repo._lock:
                items = self._repo._load()
                keep = [item for item in items if not predicate(item)]
                removed = len(items) - len(keep)
                if removed:
                    self._repo._save(keep)
        return removed

    def update_where(self, predicate: Callable[[T], bool], change: Callable[[T], T]) -> int:
        with self._repo._thread_lock:
            with self._repo._lock:
                items = self._repo._load()
                count = 0
                for idx, item in enumerate(items):
                    if predicate(item):
                        items[idx] = change(item)
                        count += 1
                if count:
                    self._repo._save(items)
        return count


class FileActivityRepository(ActivityRepository):
    """Append-only JSONL activity log with bounded tail reads."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def append(self, activity: Activity) -> Activity:
        with self._thread_lock:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(activity.to_dict(), ensure_ascii=False) + "\n")
                    handle.flush()
                    os.fsync(handle.fileno())
        return activity

    def _iter_parsed(self, handle: Any):
        for line in handle:
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                yield Activity.from_dict(parsed)

    def list_recent(
        self,
        workspace_id: Optional[str] = None,
        limit: int = 100,
        since: Optional[str] = None,
        activity_type: Optional[str] = None,
    ) -> list[Activity]:
        if limit <= 0 or not self._path.exists():
            return []
        cutoff = parse_iso(since)
        with self._thread_lock:
            with self._lock:
                with self._path.open("r", encoding="utf-8") as handle:
                    selected: deque[Activity] = deque(maxlen=limit)
                    for activity in self._iter_parsed(handle):
                        if activity_type is not None and activity.type != activity_type:
                            continue
                        if workspace_id is not None and activity.workspace_id != workspace_id:
                            continue
                        if cutoff is not None:
                            created = parse_iso(activity.created_at)
                            if created is None or created < cutoff:
                                continue
                        selected.append(activity)
        return list(selected)

    def assign_workspace(self, workspace_id: str) -> int:
        """Backfill `workspace_id` on entries written before workspaces existed."""
        if not self._path.exists():
            return 0
        with self._thread_lock:
            with self._lock:
                with self._path.open("r", encoding="utf-8") as handle:
                    entries = list(self._iter_parsed(handle))
                changed = 0
                for entry in entries:
                    if not entry.workspace_id:
                        entry.workspace_id = workspace_id
                        changed += 1
                if not changed:
                    return 0
                tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
                with tmp_path.open("w", encoding="utf-8") as handle:
                    for entry in entries:
                        handle.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_path, self._path)
        return changed


class FileConfigRepository(ConfigRepository):
    def __init__(self, path: Path, lock_path: Path) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def load(self) -> dict[str, Any]:
        with self._thread_lock:
            with self._lock:
                if not self._path.exists():
                    return {}
                raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
                return raw if isinstance(raw, dict) else {}

    def save(self, config: dict[str, Any]) -> dict[str, Any]:
        with self._thread_lock:
            with self._lock:
                atomic_write_yaml(self._path, config)
        return config
