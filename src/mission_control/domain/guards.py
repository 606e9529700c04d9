from __future__ import annotations

from typing import Optional, TypeVar

from ..errors import NotFoundError, WrongTenantError

T = TypeVar("T")


def require_owned(item: Optional[T], kind: str, item_id: str, workspace_id: str) -> T:
    """Return `item` when it exists in `workspace_id`, raise otherwise."""
    if item is None:
        raise NotFoundError(kind, item_id)
    if getattr(item, "workspace_id", None) != workspace_id:
        raise WrongTenantError(kind, item_id, workspace_id)
    return item
