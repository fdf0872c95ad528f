"""Success / failure results returned by lifecycle operations."""

from __future__ import annotations

from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    POLICY_BLOCKED = "policy_blocked"
    ILLEGAL_TRANSITION = "illegal_transition"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class Failure(BaseModel):
    kind: ErrorKind
    reason: str


class Outcome(BaseModel, Generic[T]):
    """Either ``value`` (success) or ``error`` (named failure), never both."""

    value: T | None = None
    error: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, reason: str) -> Outcome[T]:
        return cls(error=Failure(kind=kind, reason=reason))
