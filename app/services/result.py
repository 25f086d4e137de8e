"""Explicit success/failure values returned by the account service."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Failure taxonomy; each kind maps to one HTTP status at the boundary."""

    VALIDATION = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL = 500

    @property
    def status_code(self) -> int:
        return self.value


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str

    @property
    def status_code(self) -> int:
        return self.kind.status_code


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """
    Outcome of one service operation: either a value or a ServiceError, never both.

    status_code on success is the HTTP status the boundary should answer with.
    """

    value: T | None = None
    error: ServiceError | None = None
    message: str = ""
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value; raise ValueError if this is a failure."""
        if self.error is not None:
            raise ValueError(f"unwrap on failed result: {self.error.message}")
        return self.value  # type: ignore[return-value]


def ok(value: T, message: str, status_code: int = 200) -> ServiceResult[T]:
    return ServiceResult(value=value, message=message, status_code=status_code)


def fail(kind: ErrorKind, message: str) -> ServiceResult:
    return ServiceResult(
        error=ServiceError(kind=kind, message=message),
        message=message,
        status_code=kind.status_code,
    )
