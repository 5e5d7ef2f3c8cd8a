#!/usr/bin/env python3
"""
Purple Sweep - Failure Taxonomy
Typed exceptions raised by collaborators and the ``Lookup`` result type
returned by every source lookup.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar('T')


class FailureKind(str, Enum):
    """Why a single lookup or check could not be evaluated."""
    NOT_FOUND = 'not_found'
    DENIED = 'denied'
    UNAVAILABLE = 'unavailable'
    TIMEOUT = 'timeout'
    MALFORMED = 'malformed'


class SweepError(Exception):
    """Base class for all scanner errors."""

    kind: FailureKind = FailureKind.UNAVAILABLE

    def __init__(self, message: str = '', target: str = ''):
        super().__init__(message)
        self.target = target


class SourceUnavailable(SweepError):
    """A collaborator (OS API, directory, network) could not be reached."""
    kind = FailureKind.UNAVAILABLE


class NotFound(SweepError):
    """The looked-up object does not exist."""
    kind = FailureKind.NOT_FOUND


class AccessDenied(SweepError):
    """A lookup was refused by the target."""
    kind = FailureKind.DENIED


class ProbeTimeout(SweepError):
    """A bounded operation exceeded its timeout."""
    kind = FailureKind.TIMEOUT


class MalformedInput(SweepError):
    """Source data had an unexpected shape."""
    kind = FailureKind.MALFORMED


class NothingToScan(SweepError):
    """Every source was unavailable up front; the run cannot proceed."""


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Outcome of a single source lookup.

    ``ok`` lookups carry a value (which may itself be ``None`` for an
    absent registry value); failed lookups carry the failure kind and a
    short reason instead.
    """

    value: Optional[T] = None
    failure: Optional[FailureKind] = None
    reason: str = ''

    @classmethod
    def ok(cls, value: Any = None) -> 'Lookup':
        return cls(value=value)

    @classmethod
    def failed(cls, kind: FailureKind, reason: str = '') -> 'Lookup':
        return cls(failure=kind, reason=reason)

    @classmethod
    def from_error(cls, error: SweepError) -> 'Lookup':
        return cls(failure=error.kind, reason=str(error))

    @property
    def succeeded(self) -> bool:
        return self.failure is None

    def unwrap(self) -> T:
        """Return the value or raise the matching ``SweepError``."""
        if self.failure is None:
            return self.value
        raise ERROR_BY_KIND[self.failure](self.reason)


ERROR_BY_KIND = {
    FailureKind.NOT_FOUND: NotFound,
    FailureKind.DENIED: AccessDenied,
    FailureKind.UNAVAILABLE: SourceUnavailable,
    FailureKind.TIMEOUT: ProbeTimeout,
    FailureKind.MALFORMED: MalformedInput,
}
