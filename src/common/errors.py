# ABOUTME: Declares the typed exceptions raised by numeric and model primitives.
# ABOUTME: Domain predictors catch these and degrade to rule-based output.


class MLError(Exception):
    """Base class for every error raised by the ML toolkit."""


class ModelNotTrainedError(MLError):
    """Raised when predict/evaluate/save is called before fit."""

    def __init__(self, model_name: str):
        super().__init__(f"{model_name} must be trained before prediction")
        self.model_name = model_name


class DimensionMismatchError(MLError, ValueError):
    """Raised when feature widths or sample counts disagree."""


class InsufficientDataError(MLError, ValueError):
    """Raised when a routine receives fewer rows than it needs."""


class IllConditionedInputError(MLError, ValueError):
    """Raised when the normal-equation matrix is singular or near-singular."""


class ModelStateError(MLError, ValueError):
    """Raised when a serialized model blob cannot be restored."""
