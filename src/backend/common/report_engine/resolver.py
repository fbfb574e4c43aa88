"""Resolve variable definitions into per-year values.

Filter variables select rows from the movements frame and aggregate
``movement_amount`` per year. Calculated variables combine other variables
through an expression and are resolved after their dependencies.

Each call to ``resolve_variables`` builds its own ``ResolutionContext``
(cache + in-progress stack) and drops it on return.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from pydantic import ValidationError

from .config import (
    AnyVariableDefinition,
    CalculatedVariableDefinition,
    EngineConfig,
    VariableDefinition,
    coerce_variable_definition,
)
from .dataset import YEAR_COLUMN, amount_column, dataset_years, is_movements_frame
from .errors import (
    CircularDependencyError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    ResolutionError,
)
from .expressions import evaluate_expression, get_dependencies, split_dependencies
from .filters import FilterSpec, apply_filter, validate_filter
from .logging_setup import get_logger
from .models import (
    AGGREGATE_ALIASES,
    AggregateFunction,
    EmptyGroupPolicy,
    Outcome,
    ResolvedValues,
    ValidationReport,
)

logger = get_logger(__name__)

AGGREGATE_FUNCTIONS: tuple[str, ...] = tuple(a.value for a in AggregateFunction)

# Aggregates whose value over zero rows is well defined.
_ZERO_WHEN_EMPTY = {AggregateFunction.SUM, AggregateFunction.COUNT, AggregateFunction.AVERAGE}


def is_valid_aggregate(name: str) -> bool:
    if not isinstance(name, str):
        return False
    key = name.strip().lower()
    return key in AGGREGATE_FUNCTIONS or key in AGGREGATE_ALIASES


def validate_variable(raw: Any) -> ValidationReport:
    """Check a raw variable definition without raising."""
    if isinstance(raw, (VariableDefinition, CalculatedVariableDefinition)):
        raw = raw.model_dump(exclude_none=True)
    if not isinstance(raw, Mapping):
        return ValidationReport.from_errors(["Variable definition must be an object"])

    if "expression" in raw:
        expr = raw.get("expression")
        if not isinstance(expr, str) or not expr.strip():
            return ValidationReport.from_errors(["Expression must be a non-empty string"])
        try:
            get_dependencies(expr)
        except ExpressionSyntaxError as exc:
            return ValidationReport.from_errors([str(exc)])
        return ValidationReport(is_valid=True)

    errors: List[str] = []
    if "filter" not in raw:
        errors.append("Missing required field: filter")
    if "aggregate" not in raw:
        errors.append("Missing required field: aggregate")

    if "filter" in raw:
        spec = raw["filter"]
        if not isinstance(spec, Mapping):
            errors.append("Filter must be an object")
        else:
            errors.extend(validate_filter(spec).errors)

    if "aggregate" in raw:
        aggregate = raw["aggregate"]
        if isinstance(aggregate, AggregateFunction):
            pass
        elif not isinstance(aggregate, str):
            errors.append("Aggregate must be a string")
        elif not is_valid_aggregate(aggregate):
            errors.append(
                f"Invalid aggregate function: {aggregate}. "
                f"Valid functions are: {', '.join(AGGREGATE_FUNCTIONS)}"
            )
    return ValidationReport.from_errors(errors)


def aggregate_amounts(
    amounts: pd.Series,
    aggregate: AggregateFunction,
    *,
    empty_policy: EmptyGroupPolicy = EmptyGroupPolicy.ZERO,
) -> Optional[float]:
    """Apply one aggregate function to a year's amounts (missing amounts count as 0)."""
    if amounts.empty:
        if aggregate in _ZERO_WHEN_EMPTY or empty_policy == EmptyGroupPolicy.ZERO:
            return 0.0
        return None

    values = pd.to_numeric(amounts, errors="coerce").fillna(0.0)
    if aggregate == AggregateFunction.SUM:
        return float(values.sum())
    if aggregate == AggregateFunction.AVERAGE:
        return float(values.sum()) / len(values)
    if aggregate == AggregateFunction.COUNT:
        return float(len(values))
    if aggregate == AggregateFunction.MIN:
        return float(values.min())
    if aggregate == AggregateFunction.MAX:
        return float(values.max())
    if aggregate == AggregateFunction.FIRST:
        return float(values.iloc[0])
    if aggregate == AggregateFunction.LAST:
        return float(values.iloc[-1])
    raise ValueError(f"Unsupported aggregate function: {aggregate}")


def _aggregate_by_year(
    filtered: pd.DataFrame,
    aggregate: AggregateFunction,
    years: Sequence[int],
    config: EngineConfig,
) -> ResolvedValues:
    column = amount_column(filtered, config)
    year_keys = pd.to_numeric(filtered[YEAR_COLUMN], errors="coerce")
    groups = {int(year): group for year, group in filtered[column].groupby(year_keys, sort=False)}
    empty = pd.Series([], dtype="float64")

    return {
        year: aggregate_amounts(groups.get(year, empty), aggregate, empty_policy=config.empty_group_policy)
        for year in years
    }


def _coerce_filter_definition(definition: Any) -> VariableDefinition:
    if isinstance(definition, VariableDefinition):
        return definition
    report = validate_variable(definition)
    if not report.is_valid:
        raise ResolutionError(f"Invalid variable definition: {', '.join(report.errors)}")
    try:
        coerced = coerce_variable_definition(definition)
    except ValidationError as exc:
        raise ResolutionError(f"Invalid variable definition: {exc}") from exc
    if not isinstance(coerced, VariableDefinition):
        raise ResolutionError("Calculated variables can only be resolved inside a variable registry")
    return coerced


def resolve_variable(
    definition: VariableDefinition | Mapping[str, Any],
    frame: pd.DataFrame,
    *,
    years: Optional[Iterable[int]] = None,
    config: Optional[EngineConfig] = None,
) -> ResolvedValues:
    """Filter the frame with the definition's filter and aggregate per year.

    Every year of the dataset (or of ``years`` when given) gets an entry, even
    when no row survives the filter for that year.
    """
    config = config or EngineConfig()
    definition = _coerce_filter_definition(definition)

    filter_report = validate_filter(definition.filter)
    if not filter_report.is_valid:
        raise ResolutionError(f"Invalid variable definition: {', '.join(filter_report.errors)}")

    if not is_movements_frame(frame):
        raise ResolutionError("Invalid movements data provided. Data may not be loaded yet.")

    try:
        filtered = apply_filter(definition.filter, frame)
    except (KeyError, TypeError, ValueError) as exc:
        raise ResolutionError(
            f"Filter failed: {exc}. Filter: {json.dumps(definition.filter, sort_keys=True, default=str)}"
        ) from exc

    target_years = sorted(set(int(y) for y in years)) if years is not None else dataset_years(frame)
    try:
        return _aggregate_by_year(filtered, definition.aggregate, target_years, config)
    except (KeyError, TypeError, ValueError) as exc:
        message = exc.args[0] if isinstance(exc, KeyError) and exc.args else str(exc)
        raise ResolutionError(f"Aggregation failed: {message}") from exc


def resolve_with_aggregate(
    aggregate: AggregateFunction | str,
    spec: FilterSpec,
    frame: pd.DataFrame,
    **kwargs: Any,
) -> ResolvedValues:
    return resolve_variable({"filter": dict(spec), "aggregate": aggregate}, frame, **kwargs)


def resolve_sum(spec: FilterSpec, frame: pd.DataFrame, **kwargs: Any) -> ResolvedValues:
    return resolve_with_aggregate(AggregateFunction.SUM, spec, frame, **kwargs)


def resolve_average(spec: FilterSpec, frame: pd.DataFrame, **kwargs: Any) -> ResolvedValues:
    return resolve_with_aggregate(AggregateFunction.AVERAGE, spec, frame, **kwargs)


def resolve_count(spec: FilterSpec, frame: pd.DataFrame, **kwargs: Any) -> ResolvedValues:
    return resolve_with_aggregate(AggregateFunction.COUNT, spec, frame, **kwargs)


def variable_dependencies(definition: AnyVariableDefinition) -> List[str]:
    """Names a definition needs resolved first. Filter variables have none."""
    if isinstance(definition, CalculatedVariableDefinition):
        return get_dependencies(definition.expression)
    return []


@dataclass
class ResolutionContext:
    """Memo cache and in-progress stack for one top-level resolution pass."""

    cache: Dict[str, ResolvedValues] = field(default_factory=dict)
    stack: List[str] = field(default_factory=list)
    cache_hits: int = 0

    def enter(self, name: str) -> None:
        if name in self.stack:
            cycle = self.stack[self.stack.index(name):] + [name]
            raise CircularDependencyError(cycle)
        self.stack.append(name)

    def leave(self, name: str, value: ResolvedValues) -> None:
        if not self.stack or self.stack[-1] != name:
            raise ResolutionError(f"Resolution stack out of order at '{name}'", variable=name)
        self.stack.pop()
        self.cache[name] = value


def build_evaluation_context(
    resolved: Mapping[str, ResolvedValues],
    year: int,
    ordered_rows: Optional[Mapping[int, Mapping[int, Optional[float]]]] = None,
) -> Dict[str, Optional[float]]:
    """Flatten resolved values for one year into an expression context.

    ``ordered_rows`` maps a line order number to its per-year amounts and is
    exposed as ``@<order>``.
    """
    context: Dict[str, Optional[float]] = {name: values.get(year, 0.0) for name, values in resolved.items()}
    for order, amounts in (ordered_rows or {}).items():
        context[f"@{order}"] = amounts.get(year, 0.0)
    return context


class _RegistryResolver:
    def __init__(
        self,
        registry: Mapping[str, AnyVariableDefinition],
        frame: pd.DataFrame,
        years: List[int],
        config: EngineConfig,
    ):
        self._registry = registry
        self._frame = frame
        self._years = years
        self._config = config
        self.context = ResolutionContext()

    def resolve(self, name: str) -> ResolvedValues:
        """Resolve ``name`` and everything it depends on, depth first.

        ``pending`` holds one frame per variable in progress; the walk never recurses.
        """
        if self._cached(name):
            return self.context.cache[name]

        pending: List[Tuple[str, List[str], Iterator[str]]] = [self._open(name)]
        while pending:
            current, variables, remaining = pending[-1]
            dep = next((d for d in remaining if not self._cached(d)), None)
            if dep is not None:
                pending.append(self._open(dep))
                continue

            pending.pop()
            resolved_deps = {d: self.context.cache[d] for d in variables}
            value = self._compute(current, self._registry[current], resolved_deps)
            self.context.leave(current, value)
        return self.context.cache[name]

    def _cached(self, name: str) -> bool:
        if name not in self.context.cache:
            return False
        self.context.cache_hits += 1
        logger.debug("variable_cache_hit", extra={"variable": name})
        return True

    def _open(self, name: str) -> Tuple[str, List[str], Iterator[str]]:
        try:
            self.context.enter(name)
        except CircularDependencyError as exc:
            logger.warning("circular_dependency_detected", extra={"cycle": exc.cycle})
            raise

        variables, orders = split_dependencies(variable_dependencies(self._registry[name]))
        if orders:
            raise ResolutionError(
                f"Failed to resolve variable '{name}': ordered references ({', '.join(orders)}) "
                "are not available in a variable registry",
                variable=name,
            )
        missing = [dep for dep in variables if dep not in self._registry]
        if missing:
            raise ResolutionError(
                f"Failed to resolve variable '{name}': unknown variable(s) {', '.join(missing)}",
                variable=name,
            )
        return name, variables, iter(variables)

    def _compute(
        self,
        name: str,
        definition: AnyVariableDefinition,
        resolved_deps: Mapping[str, ResolvedValues],
    ) -> ResolvedValues:
        if isinstance(definition, CalculatedVariableDefinition):
            result: ResolvedValues = {}
            for year in self._years:
                context = build_evaluation_context(resolved_deps, year)
                try:
                    result[year] = evaluate_expression(definition.expression, context)
                except ExpressionEvaluationError as exc:
                    raise ResolutionError(
                        f"Failed to resolve variable '{name}' for {year}: {exc}", variable=name
                    ) from exc
            return result

        try:
            return resolve_variable(definition, self._frame, years=self._years, config=self._config)
        except ResolutionError as exc:
            raise ResolutionError(f"Failed to resolve variable '{name}': {exc}", variable=name) from exc


def _coerce_registry(registry: Any) -> Dict[str, AnyVariableDefinition]:
    if not isinstance(registry, Mapping):
        raise ResolutionError("Variables must be an object")
    coerced: Dict[str, AnyVariableDefinition] = {}
    for name, raw in registry.items():
        report = validate_variable(raw)
        if not report.is_valid:
            raise ResolutionError(
                f"Failed to resolve variable '{name}': Invalid variable definition: {', '.join(report.errors)}",
                variable=name,
            )
        try:
            coerced[name] = coerce_variable_definition(raw)
        except ValidationError as exc:
            raise ResolutionError(
                f"Failed to resolve variable '{name}': Invalid variable definition: {exc}",
                variable=name,
            ) from exc
    return coerced


def resolve_variables(
    registry: Mapping[str, Any],
    frame: pd.DataFrame,
    *,
    years: Optional[Iterable[int]] = None,
    config: Optional[EngineConfig] = None,
) -> Dict[str, ResolvedValues]:
    """Resolve every variable in ``registry``, in registry order."""
    config = config or EngineConfig()
    definitions = _coerce_registry(registry)
    if not is_movements_frame(frame):
        raise ResolutionError("Movements data is required")

    target_years = sorted(set(int(y) for y in years)) if years is not None else dataset_years(frame)
    resolver = _RegistryResolver(definitions, frame, target_years, config)

    t0 = time.monotonic()
    logger.info(
        "variable_resolution_started",
        extra={"variable_count": len(definitions), "years": target_years, "rows": len(frame)},
    )
    resolved = {name: resolver.resolve(name) for name in definitions}
    logger.info(
        "variable_resolution_completed",
        extra={
            "variable_count": len(resolved),
            "cache_hits": resolver.context.cache_hits,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        },
    )
    return resolved


def resolve_variables_safe(
    registry: Mapping[str, Any],
    frame: pd.DataFrame,
    **kwargs: Any,
) -> Outcome[Dict[str, ResolvedValues]]:
    try:
        return Outcome.success(resolve_variables(registry, frame, **kwargs))
    except ResolutionError as exc:
        return Outcome.failure(exc)
