from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from roster_scanner.domain.errors import ErrorType

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error_type: ErrorType
    message: str
    status: int | None = None
    scans_used: int | None = None
    scan_limit: int | None = None


ScanResult = Union[Ok[T], Err]
