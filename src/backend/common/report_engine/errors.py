from __future__ import annotations

from typing import List, Optional, Sequence


class ReportEngineError(ValueError):
    """Base class for every error raised by the report engine."""


class ExpressionSyntaxError(ReportEngineError):
    def __init__(self, message: str, *, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class ExpressionEvaluationError(ReportEngineError):
    pass


class UndefinedReferenceError(ExpressionEvaluationError):
    def __init__(self, name: str):
        kind = "order reference" if name.startswith("@") else "variable"
        super().__init__(f"Undefined {kind}: {name}")
        self.name = name


class DivisionByZeroError(ExpressionEvaluationError):
    def __init__(self) -> None:
        super().__init__("Division by zero")


class FilterValidationError(ReportEngineError):
    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        super().__init__(f"Invalid filter specification: {', '.join(self.errors)}")


class ResolutionError(ReportEngineError):
    def __init__(self, message: str, *, variable: Optional[str] = None):
        super().__init__(message)
        self.variable = variable


class CircularDependencyError(ResolutionError):
    def __init__(self, cycle: Sequence[str]):
        self.cycle: List[str] = list(cycle)
        super().__init__(
            f"Circular dependency detected: {' -> '.join(self.cycle)}",
            variable=self.cycle[0] if self.cycle else None,
        )


class ReportDefinitionError(ReportEngineError):
    def __init__(self, message: str, *, errors: Sequence[str] = ()):
        super().__init__(message)
        self.errors: List[str] = list(errors)
