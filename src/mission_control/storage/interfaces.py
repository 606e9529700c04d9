from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Optional, TypeVar

from ..domain.models import Activity

T = TypeVar("T")


class CollectionRepository(ABC, Generic[T]):
    """Workspace-partitioned collection of records keyed by `id`."""

    @abstractmethod
    def list(self, workspace_id: Optional[str] = None) -> list[T]:
        raise NotImplementedError

    @abstractmethod
    def get(self, item_id: str) -> Optional[T]:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, item: T) -> T:
        raise NotImplementedError

    @abstractmethod
    def delete(self, item_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def mutate(self, item_id: str, change: Callable[[T], Optional[T]]) -> Optional[T]:
        """Apply `change` to one record under the repository lock.

        `change` may return None to leave the stored record untouched. Returns the
        stored record after the call, or None if `item_id` is absent.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_where(self, predicate: Callable[[T], bool]) -> int:
        raise NotImplementedError

    @abstractmethod
    def update_where(self, predicate: Callable[[T], bool], change: Callable[[T], T]) -> int:
        raise NotImplementedError


class ActivityRepository(ABC):
    @abstractmethod
    def append(self, activity: Activity) -> Activity:
        raise NotImplementedError

    @abstractmethod
    def list_recent(
        self,
        workspace_id: Optional[str] = None,
        limit: int = 100,
        since: Optional[str] = None,
        activity_type: Optional[str] = None,
    ) -> list[Activity]:
        raise NotImplementedError

    @abstractmethod
    def assign_workspace(self, workspace_id: str) -> int:
        raise NotImplementedError


class ConfigRepository(ABC):
    @abstractmethod
    def load(self) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def save(self, config: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError
