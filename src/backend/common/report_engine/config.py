from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .models import AGGREGATE_ALIASES, AggregateFunction, EmptyGroupPolicy


class EngineConfig(BaseModel):
    amount_column: str = "movement_amount"
    # Older trial-balance exports named the amount column `amount`.
    fallback_amount_columns: List[str] = Field(default_factory=lambda: ["amount"])
    empty_group_policy: EmptyGroupPolicy = EmptyGroupPolicy.ZERO
    default_months_back: int = Field(default=12, gt=0)

    def amount_columns(self) -> List[str]:
        return [self.amount_column, *self.fallback_amount_columns]


class VariableDefinition(BaseModel):
    """A named filter + aggregate pair that yields one value per year."""

    filter: Dict[str, Any] = Field(default_factory=dict)
    aggregate: AggregateFunction
    description: Optional[str] = None

    @field_validator("aggregate", mode="before")
    @classmethod
    def _normalize_aggregate(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip().lower()
            return AGGREGATE_ALIASES.get(key, key)
        return value


class CalculatedVariableDefinition(BaseModel):
    """A variable computed per year from other variables via an expression."""

    expression: str
    description: Optional[str] = None

    @field_validator("expression")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("expression must be a non-empty string")
        return value


AnyVariableDefinition = Union[VariableDefinition, CalculatedVariableDefinition]


def coerce_variable_definition(raw: Any) -> AnyVariableDefinition:
    """Turn a raw mapping (or an existing model) into a definition model."""
    if isinstance(raw, (VariableDefinition, CalculatedVariableDefinition)):
        return raw
    if isinstance(raw, dict) and "expression" in raw:
        return CalculatedVariableDefinition.model_validate(raw)
    return VariableDefinition.model_validate(raw)
