from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    CONDITIONAL_CHECK_FAILED = "conditional_check_failed"
    VALIDATION = "validation"
    ACCESS_DENIED = "access_denied"
    THROTTLED = "throttled"
    UNAVAILABLE = "unavailable"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


@dataclass(slots=True)
class DdbError(Exception):
    """Base error for the entity store.

    Not-found is never an error here: lookups and writes against a missing key
    return None instead.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    retryable: bool = False
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class ConfigurationError(DdbError):
    pass


@dataclass(slots=True)
class CodecError(DdbError):
    pass


@dataclass(slots=True)
class StoreError(DdbError):
    kind: ErrorKind = ErrorKind.INTERNAL
