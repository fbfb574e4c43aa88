from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import pandas as pd
from pydantic import BaseModel, Field

from .dataset import dataset_years
from .definitions import ReportDefinition
from .ltm import calculate_ltm_info
from .resolver import resolve_variables
from .variance import variance_by_year


class LTMSummary(BaseModel):
    label: str
    complete: bool
    actual_months: int
    expected_months: int
    message: str


class VariableVariance(BaseModel):
    amount: float
    percent: float


class ReportRun(BaseModel):
    run_id: str
    generated_at: datetime
    report_id: str
    report_name: str
    statement_type: str
    years: List[int] = Field(default_factory=list)

    values: Dict[str, Dict[int, Optional[float]]] = Field(default_factory=dict)
    variances: Dict[str, VariableVariance] = Field(default_factory=dict)
    ltm: Optional[LTMSummary] = None


class ReportRunner:
    def __init__(self, definition: ReportDefinition):
        self._definition = definition

    def run(
        self,
        movements: pd.DataFrame,
        *,
        ltm: bool = False,
        months_back: Optional[int] = None,
        available_years: Optional[Iterable[int]] = None,
    ) -> ReportRun:
        config = self._definition.engine
        known_years = list(available_years) if available_years is not None else dataset_years(movements)

        working = movements
        years = sorted(known_years)
        ltm_summary = None
        if ltm:
            info = calculate_ltm_info(movements, known_years, months_back or config.default_months_back)
            working = info.filtered_data
            years = []
            if info.ranges:
                # The whole window is one column, keyed by the year it ends in.
                working = working.sort_values(["year", "period"], kind="stable").assign(year=info.latest_year)
                years = [info.latest_year]
            ltm_summary = LTMSummary(
                label=info.label,
                complete=info.availability.complete,
                actual_months=info.availability.actual_months,
                expected_months=info.availability.expected_months,
                message=info.availability.message,
            )

        resolved = resolve_variables(
            self._definition.variable_registry(), working, years=years, config=config
        )

        variances: Dict[str, VariableVariance] = {}
        if not ltm and len(years) >= 2:
            for name, result in variance_by_year(resolved, years[-2], years[-1]).items():
                variances[name] = VariableVariance(amount=result.amount, percent=result.percent)

        return ReportRun(
            run_id=str(uuid.uuid4()),
            generated_at=datetime.now(timezone.utc),
            report_id=self._definition.report_id,
            report_name=self._definition.name,
            statement_type=self._definition.statement_type,
            years=years,
            values=resolved,
            variances=variances,
            ltm=ltm_summary,
        )
