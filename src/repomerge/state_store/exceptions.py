"""Custom exceptions for State Store."""


class StateStoreError(Exception):
    """Base exception for State Store errors."""


class RunNotFoundError(StateStoreError):
    """Run with given ID does not exist."""


class RunExistsError(StateStoreError):
    """Run with given ID already exists."""
