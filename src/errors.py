"""Exception hierarchy for the analysis pipeline.

Every error carries the name of the stage that raised it so the CLI can
report where a run stopped.
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    stage = "pipeline"

    def __init__(self, message, stage=None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class DataLoadError(PipelineError):
    """Input file missing, unreadable or not matching the expected schema."""

    stage = "load"

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class ImputationError(PipelineError):
    """A column could not be modelled for predictive mean matching."""

    stage = "imputation"


class StandardizationError(PipelineError):
    """A column has zero or undefined variance."""

    stage = "standardization"


class ConfigurationError(PipelineError):
    """Misconfiguration such as an empty grid or an empty partition."""

    stage = "configuration"


class FitFailureError(PipelineError):
    """A single grid point failed to train or score."""

    stage = "training"


class SearchFailedError(PipelineError):
    """Every grid point of a model family failed."""

    stage = "training"
