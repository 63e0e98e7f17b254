"""
Outcome type returned by the marketplace services.

Expected outcomes (missing record, duplicate email, wrong owner) are values,
not exceptions. Storage faults still raise.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Status(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    INVALID = "invalid"


@dataclass(frozen=True)
class Result:
    status: Status
    value: Any = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is Status.OK

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(Status.OK, value)

    @classmethod
    def not_found(cls, detail: str = "Not found") -> "Result":
        return cls(Status.NOT_FOUND, detail=detail)

    @classmethod
    def conflict(cls, detail: str) -> "Result":
        return cls(Status.CONFLICT, detail=detail)

    @classmethod
    def forbidden(cls, detail: str) -> "Result":
        return cls(Status.FORBIDDEN, detail=detail)

    @classmethod
    def unauthorized(cls, detail: str = "Invalid credentials") -> "Result":
        return cls(Status.UNAUTHORIZED, detail=detail)

    @classmethod
    def invalid(cls, detail: str) -> "Result":
        return cls(Status.INVALID, detail=detail)
