from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

# year -> aggregated amount; None only under EmptyGroupPolicy.NONE
ResolvedValues = Dict[int, Optional[float]]


class AggregateFunction(str, Enum):
    SUM = "sum"
    AVERAGE = "average"
    COUNT = "count"
    MIN = "min"
    MAX = "max"
    FIRST = "first"
    LAST = "last"


# Legacy spellings accepted in report definitions.
AGGREGATE_ALIASES: Dict[str, AggregateFunction] = {"avg": AggregateFunction.AVERAGE}


class EmptyGroupPolicy(str, Enum):
    """What min/max/first/last yield for a year without matching rows."""

    ZERO = "zero"
    NONE = "none"


class ValidationReport(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationReport":
        return cls(is_valid=not errors, errors=list(errors))


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success/failure value returned by the ``*_safe`` entry points."""

    ok: bool
    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Outcome[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True)
class VarianceResult:
    amount: float
    percent: float

    def as_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "percent": self.percent}
