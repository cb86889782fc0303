"""Typed stage results for the keeper pipeline.

Every stage (quote, gate, execute) reports one of three outcomes instead of
raising for expected conditions:

- OK: the stage produced a value and the pipeline continues
- SKIP: an expected, non-error condition ended the pipeline for this pair
- ERROR: something failed (RPC, revert, timeout); logged, never fatal
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class Outcome(StrEnum):
    OK = "ok"
    SKIP = "skip"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StageResult(Generic[T]):
    outcome: Outcome
    value: T | None = None
    reason: str | None = None

    @classmethod
    def ok(cls, value: T) -> StageResult[T]:
        return cls(Outcome.OK, value=value)

    @classmethod
    def skip(cls, reason: str) -> StageResult[T]:
        return cls(Outcome.SKIP, reason=reason)

    @classmethod
    def error(cls, reason: str) -> StageResult[T]:
        return cls(Outcome.ERROR, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.outcome is Outcome.OK

    @property
    def is_skip(self) -> bool:
        return self.outcome is Outcome.SKIP

    @property
    def is_error(self) -> bool:
        return self.outcome is Outcome.ERROR

    def unwrap(self) -> T:
        """Return the value of an OK result."""
        if self.outcome is not Outcome.OK or self.value is None:
            msg = f"Cannot unwrap {self.outcome} result ({self.reason})"
            raise ValueError(msg)
        return self.value
