from __future__ import annotations

from typing import Dict, Mapping

from .models import ResolvedValues, VarianceResult


def calculate_variance_amount(current: float, prior: float) -> float:
    return current - prior


def calculate_variance_percent(current: float, prior: float) -> float:
    # Relative to |prior| so a shrinking loss reads as an improvement.
    if prior == 0:
        return 0.0
    return (current - prior) / abs(prior) * 100


def calculate_variance(current: float, prior: float) -> VarianceResult:
    return VarianceResult(
        amount=calculate_variance_amount(current, prior),
        percent=calculate_variance_percent(current, prior),
    )


def variance_by_year(
    resolved: Mapping[str, ResolvedValues],
    prior_year: int,
    current_year: int,
) -> Dict[str, VarianceResult]:
    """Year-over-year variance for every resolved variable (missing years count as 0)."""
    return {
        name: calculate_variance(values.get(current_year) or 0.0, values.get(prior_year) or 0.0)
        for name, values in resolved.items()
    }
