"""
errors.py — Error taxonomy and the uniform accessor result

Business Rules:
- RemoteError: network / 5xx / webhook failure; optimistic callers roll back
- ValidationFailure: caught client-side, never sent to the remote layer
- NotFoundOrForbidden: record missing or owned by another tenant, terminal
- PersistenceTimeout: a RemoteError raised when a bounded call expires
- No error here is retried automatically; retries are user-initiated

Called by: services/*, board/controller.py, routers/*
Depends on: pydantic (ValidationError flattening)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

T = TypeVar("T")


class CrmError(Exception):
    """Base class. `blocking` separates action-stopping errors from informational ones."""

    blocking = True

    def __init__(self, message: str, *, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class RemoteError(CrmError):
    def __init__(self, message: str, *, status_code: int | None = None, detail: Any = None):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class PersistenceTimeout(RemoteError):
    pass


class ValidationFailure(CrmError):
    pass


class NotFoundOrForbidden(CrmError):
    pass


def from_validation_error(exc: ValidationError) -> ValidationFailure:
    """Flatten a pydantic error into the first human-readable message."""
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    if errors:
        msg = str(errors[0].get("msg", "Invalid data"))
        # pydantic prefixes custom ValueError messages
        msg = msg.removeprefix("Value error, ")
    else:
        msg = "Invalid data"
    return ValidationFailure(msg, detail=errors)


@dataclass
class Result(Generic[T]):
    """`{data, error}` pair returned by every entity accessor."""

    data: T | None = None
    error: CrmError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.data

    @classmethod
    def success(cls, data: T) -> "Result[T]":
        return cls(data=data, error=None)

    @classmethod
    def failure(cls, error: CrmError) -> "Result[T]":
        return cls(data=None, error=error)
