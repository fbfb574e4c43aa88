"""Declarative row filters over the movements frame.

A filter specification maps a field to one of:

- a scalar: exact match (``{"code1": "700"}``)
- a list: match any of the values (``{"code1": ["700", "710"]}``)
- a range mapping with ``gte``/``lte``/``gt``/``lt`` keys
  (``{"code1": {"gte": "700", "lte": "799"}}``)

Fields are AND-ed together. An empty specification keeps every row.
Comparisons use the type of the supplied value: string values compare
against the column as text, numeric values against the column as numbers.
"""

from __future__ import annotations

from functools import reduce
from numbers import Real
from typing import Any, Callable, Iterable, List, Mapping

import pandas as pd

from .errors import FilterValidationError, ReportEngineError
from .logging_setup import get_logger
from .models import Outcome, ValidationReport

logger = get_logger(__name__)

FILTER_FIELDS: tuple[str, ...] = (
    "code1",
    "code2",
    "code3",
    "name1",
    "name2",
    "name3",
    "statement_type",
    "account_code",
)
RANGE_OPERATORS: tuple[str, ...] = ("gte", "lte", "gt", "lt")

FilterSpec = Mapping[str, Any]
RowPredicate = Callable[[pd.DataFrame], pd.Series]


def is_valid_field(field: str) -> bool:
    return field in FILTER_FIELDS


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, str) or _is_number(value)


def _validate_value(field: str, value: Any) -> List[str]:
    if value is None:
        return [f"Filter value for {field} cannot be null or undefined"]

    if isinstance(value, (list, tuple)):
        errors: List[str] = []
        if not value:
            errors.append(f"Filter array for {field} cannot be empty")
        if any(v is None for v in value):
            errors.append(f"Filter array for {field} contains null or undefined values")
        elif any(not _is_scalar(v) for v in value):
            errors.append(f"Filter array for {field} must contain only strings or numbers")
        return errors

    if isinstance(value, Mapping):
        if not value:
            return [f"Range filter for {field} cannot be empty"]
        errors = []
        invalid = [str(k) for k in value if k not in RANGE_OPERATORS]
        if invalid:
            errors.append(
                f"Invalid range operators for {field}: {', '.join(invalid)}. "
                f"Valid operators are: {', '.join(RANGE_OPERATORS)}"
            )
        present = []
        for op, bound in value.items():
            if bound is None:
                errors.append(f"Range value for {field}.{op} cannot be null or undefined")
            elif not _is_scalar(bound):
                errors.append(f"Range value for {field}.{op} must be a string or a number")
            else:
                present.append(bound)
        kinds = {isinstance(b, str) for b in present}
        if len(kinds) > 1:
            errors.append(f"Range values for {field} must all be strings or all be numbers")
        return errors

    if not _is_scalar(value):
        return [f"Filter value for {field} must be a string, a number, a list or a range"]
    return []


def validate_filter(spec: Any) -> ValidationReport:
    """Collect every problem in a specification. Never raises."""
    if not isinstance(spec, Mapping):
        return ValidationReport.from_errors(["Filter specification must be an object"])

    errors: List[str] = []
    for field, value in spec.items():
        if not is_valid_field(field):
            errors.append(f"Invalid filter field: {field}. Valid fields are: {', '.join(FILTER_FIELDS)}")
            continue
        errors.extend(_validate_value(field, value))
    return ValidationReport.from_errors(errors)


def _typed_column(column: pd.Series, sample: Any) -> pd.Series:
    if isinstance(sample, str):
        return column.astype(str)
    return pd.to_numeric(column, errors="coerce")


def _exact_mask(column: pd.Series, value: Any) -> pd.Series:
    return _typed_column(column, value) == value


def _any_of_mask(column: pd.Series, values: Iterable[Any]) -> pd.Series:
    values = list(values)
    texts = [v for v in values if isinstance(v, str)]
    numbers = [v for v in values if not isinstance(v, str)]
    mask = pd.Series(False, index=column.index)
    if texts:
        mask |= column.astype(str).isin(texts)
    if numbers:
        mask |= pd.to_numeric(column, errors="coerce").isin(numbers)
    return mask


def _range_mask(column: pd.Series, bounds: Mapping[str, Any]) -> pd.Series:
    typed = _typed_column(column, next(iter(bounds.values())))
    mask = pd.Series(True, index=column.index)
    if "gte" in bounds:
        mask &= typed >= bounds["gte"]
    if "lte" in bounds:
        mask &= typed <= bounds["lte"]
    if "gt" in bounds:
        mask &= typed > bounds["gt"]
    if "lt" in bounds:
        mask &= typed < bounds["lt"]
    return mask


def _field_predicate(field: str, value: Any) -> RowPredicate:
    if isinstance(value, (list, tuple)):
        return lambda frame: _any_of_mask(frame[field], value)
    if isinstance(value, Mapping):
        return lambda frame: _range_mask(frame[field], value)
    return lambda frame: _exact_mask(frame[field], value)


def compile_filter(spec: FilterSpec) -> RowPredicate:
    """Build a predicate returning a boolean row mask for a frame."""
    predicates = [_field_predicate(field, value) for field, value in (spec or {}).items()]

    def _predicate(frame: pd.DataFrame) -> pd.Series:
        mask = pd.Series(True, index=frame.index)
        for predicate in predicates:
            mask &= predicate(frame).fillna(False).astype(bool)
        return mask

    return _predicate


def apply_filter(spec: FilterSpec, frame: pd.DataFrame) -> pd.DataFrame:
    """Rows of ``frame`` matching ``spec``; the frame itself when ``spec`` is empty.

    Does not validate; call ``validate_filter`` (or ``apply_filter_safe``) first
    for untrusted specifications.
    """
    if not spec:
        return frame
    filtered = frame.loc[compile_filter(spec)(frame)]
    logger.debug(
        "filter_applied",
        extra={"filter_fields": sorted(spec), "rows_in": len(frame), "rows_out": len(filtered)},
    )
    return filtered


def apply_filter_safe(spec: Any, frame: pd.DataFrame | None) -> Outcome[pd.DataFrame]:
    if frame is None:
        return Outcome.failure(ReportEngineError("Table is required"))

    report = validate_filter(spec)
    if not report.is_valid:
        return Outcome.failure(FilterValidationError(report.errors))

    try:
        return Outcome.success(apply_filter(spec, frame))
    except (KeyError, TypeError, ValueError) as exc:
        return Outcome.failure(ReportEngineError(f"Failed to apply filter: {exc}"))


def filter_by_field(field: str, value: Any) -> Callable[[pd.DataFrame], pd.DataFrame]:
    spec = {field: value}
    return lambda frame: apply_filter(spec, frame)


def combine_filters(specs: Iterable[FilterSpec], frame: pd.DataFrame) -> pd.DataFrame:
    return reduce(lambda acc, spec: apply_filter(spec, acc), specs, frame)
