"""REST API for repomerge."""

from repomerge.api.app import app, create_app
from repomerge.api.models import (
    APIResponse,
    RunCreate,
    RunResponse,
)

__all__ = [
    "APIResponse",
    "RunCreate",
    "RunResponse",
    "app",
    "create_app",
]
