"""Report computation engine for trial-balance financial statements.

This package contains only computation:
- Inputs are a movements frame (pandas) + variable definitions + expressions.
- No spreadsheet parsing, file pickers, grid rendering or export live here.
"""

from .config import CalculatedVariableDefinition, EngineConfig, VariableDefinition
from .definitions import ReportDefinition, load_report_definition, validate_report_definition
from .errors import (
    CircularDependencyError,
    DivisionByZeroError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    FilterValidationError,
    ReportDefinitionError,
    ReportEngineError,
    ResolutionError,
    UndefinedReferenceError,
)
from .expressions import (
    evaluate,
    evaluate_expression,
    evaluate_expression_safe,
    get_dependencies,
    parse,
    parse_expression,
    tokenize,
    validate_expression,
)
from .filters import apply_filter, apply_filter_safe, compile_filter, validate_filter
from .ltm import (
    LTMInfo,
    LTMRange,
    calculate_ltm_info,
    calculate_ltm_range,
    check_data_availability,
    get_latest_available_period,
)
from .models import AggregateFunction, EmptyGroupPolicy, Outcome, ValidationReport
from .resolver import (
    ResolutionContext,
    build_evaluation_context,
    resolve_variable,
    resolve_variables,
    resolve_variables_safe,
    validate_variable,
)
from .runner import ReportRun, ReportRunner
from .variance import calculate_variance, variance_by_year
