"""Error taxonomy for the model-selection workflow.

All errors are deterministic configuration problems: nothing here is retried.
`context` carries where the failure happened (family, grid point, fold) so
the message points at the offending unit of work.
"""

from typing import Any


class ModelSelectionError(Exception):
    """Base class for pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = {}

    def add_context(self, **context: Any) -> "ModelSelectionError":
        for key, value in context.items():
            self.context.setdefault(key, value)
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        where = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} [{where}]"


class SchemaError(ModelSelectionError):
    """Missing, unexpected or badly declared columns."""


class SchemaMismatchError(SchemaError):
    """Predict-time columns differ from the columns seen at fit time."""


class InsufficientDataError(ModelSelectionError):
    """A stratification group is too small to split or fold."""


class InvalidFoldCountError(ModelSelectionError):
    """Fold count below 2 or larger than the smallest stratification group."""


class InvalidHyperparameterError(ModelSelectionError):
    """Unknown hyperparameter name or value outside the family's domain."""
