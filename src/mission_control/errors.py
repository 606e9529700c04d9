"""Error taxonomy shared by the board, the queue and the agent runtime.

Fatal items (`NotFoundError`, `WrongTenantError`, `ValidationError`) abort the
single mutation and reach the caller unmodified. `ExternalFailure` is caught at
the run-request boundary by the dispatcher. `PolicyViolation` is reported per
action by the executor and the coordinator.
"""

from __future__ import annotations

from typing import Optional


class MissionControlError(Exception):
    """Base class for all mission control errors."""


class NotFoundError(MissionControlError):
    """A referenced entity does not exist."""

    def __init__(self, kind: str, entity_id: str, message: Optional[str] = None) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(message or f"{kind.capitalize()} not found: {entity_id}")


class WrongTenantError(MissionControlError):
    """A referenced entity exists but belongs to another workspace."""

    def __init__(self, kind: str, entity_id: str, workspace_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        self.workspace_id = workspace_id
        super().__init__(f"{kind.capitalize()} {entity_id} does not belong to workspace {workspace_id}")


class ValidationError(MissionControlError):
    """Empty required text or an illegal enum value."""


class PolicyViolation(MissionControlError):
    """An illegal state transition or a terminal-state change was attempted."""


class ExternalFailure(MissionControlError):
    """Generate or storage call failed."""


class GenerateError(ExternalFailure):
    """The text generation backend returned an error or unusable output."""


class GenerateTimeout(GenerateError):
    """The text generation backend did not answer in time."""


class InvocationCancelled(GenerateError):
    """The invocation was cancelled before its result could be applied."""
