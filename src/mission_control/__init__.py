"""Provide the public `mission_control` package exports."""

from __future__ import annotations

from .errors import (
    ExternalFailure,
    GenerateError,
    GenerateTimeout,
    InvocationCancelled,
    MissionControlError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
    WrongTenantError,
)

__version__ = "0.3.0"

__all__ = [
    "ExternalFailure",
    "GenerateError",
    "GenerateTimeout",
    "InvocationCancelled",
    "MissionControlError",
    "NotFoundError",
    "PolicyViolation",
    "ValidationError",
    "WrongTenantError",
    "__version__",
]
