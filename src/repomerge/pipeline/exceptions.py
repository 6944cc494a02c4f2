"""Exceptions for pipeline runs."""


class PipelineError(Exception):
    """Base exception for pipeline errors."""


class ConfigurationError(PipelineError):
    """Pipeline configuration is invalid; the run is never created.

    Attributes:
        problems: Individual validation failures.
    """

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or [message]


class RunStateError(PipelineError):
    """Illegal transition requested on a run or one of its steps."""


class CancellationError(PipelineError):
    """A run was cancelled while a step was executing."""
