"""Report definitions: a named variable registry plus engine settings.

Definitions are stored as JSON or YAML files, for example::

    {
      "reportId": "income_simple",
      "name": "Simple Income Statement",
      "version": "1.0.0",
      "statementType": "income",
      "variables": {
        "revenue": {"filter": {"code1": "700"}, "aggregate": "sum"},
        "cogs": {"filter": {"code1": "710"}, "aggregate": "sum"},
        "gross_profit": {"expression": "revenue + cogs"}
      }
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import AnyVariableDefinition, EngineConfig, coerce_variable_definition
from .errors import ExpressionSyntaxError, ReportDefinitionError
from .expressions import get_dependencies
from .logging_setup import get_logger
from .models import ValidationReport
from .resolver import validate_variable

logger = get_logger(__name__)


class ReportDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId")
    name: str
    version: str
    statement_type: str = Field(alias="statementType")
    description: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    def variable_registry(self) -> Dict[str, AnyVariableDefinition]:
        return {name: coerce_variable_definition(raw) for name, raw in self.variables.items()}


_REQUIRED_FIELDS = ("reportId", "name", "version", "statementType")
_FIELD_ALIASES = {"reportId": "report_id", "statementType": "statement_type"}


def validate_report_definition(raw: Any) -> ValidationReport:
    """Collect every problem in a raw report definition without raising."""
    if not isinstance(raw, Mapping):
        return ValidationReport.from_errors(["Report definition must be an object"])

    errors: List[str] = []
    for key in _REQUIRED_FIELDS:
        if key not in raw and _FIELD_ALIASES.get(key, key) not in raw:
            errors.append(f"Missing required field: {key}")

    variables = raw.get("variables", {})
    if not isinstance(variables, Mapping):
        errors.append("variables must be an object")
        variables = {}

    for name, definition in variables.items():
        report = validate_variable(definition)
        errors.extend(f"Variable '{name}': {msg}" for msg in report.errors)
        if not report.is_valid or "expression" not in definition:
            continue
        try:
            deps = get_dependencies(definition["expression"])
        except ExpressionSyntaxError:
            continue
        for dep in deps:
            if dep.startswith("@"):
                errors.append(f"Variable '{name}': ordered reference {dep} is not allowed in variables")
            elif dep not in variables:
                errors.append(f"Variable '{name}': references unknown variable '{dep}'")

    if "engine" in raw:
        try:
            EngineConfig.model_validate(raw["engine"])
        except ValidationError as exc:
            errors.append(f"Invalid engine configuration: {exc}")

    return ValidationReport.from_errors(errors)


def parse_report_definition(raw: Any) -> ReportDefinition:
    report = validate_report_definition(raw)
    if not report.is_valid:
        report_id = raw.get("reportId", "unknown") if isinstance(raw, Mapping) else "unknown"
        raise ReportDefinitionError(
            f"Invalid report definition '{report_id}': {'; '.join(report.errors)}",
            errors=report.errors,
        )
    try:
        return ReportDefinition.model_validate(raw)
    except ValidationError as exc:
        raise ReportDefinitionError(f"Invalid report definition '{raw.get('reportId', 'unknown')}': {exc}") from exc


def load_report_definition(path: Path | str) -> ReportDefinition:
    path = Path(path)
    text = path.read_text()
    if path.suffix.lower() in (".yaml", ".yml"):
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ReportDefinitionError(f"Report definition {path} is not valid YAML: {exc}") from exc
    else:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ReportDefinitionError(f"Report definition {path} is not valid JSON: {exc}") from exc

    definition = parse_report_definition(raw)
    logger.info(
        "report_definition_loaded",
        extra={"report_id": definition.report_id, "variable_count": len(definition.variables), "path": str(path)},
    )
    return definition
