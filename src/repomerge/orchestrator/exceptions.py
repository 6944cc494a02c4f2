"""Exceptions for the Orchestrator module."""


class OrchestratorError(Exception):
    """Base exception for orchestrator errors."""

    pass


class RunNotRegisteredError(OrchestratorError):
    """The run was not created by this orchestrator, so it has no configuration to execute."""

    pass


class EmptySelectionError(OrchestratorError):
    """The selection rules matched nothing in the source repository."""

    pass
