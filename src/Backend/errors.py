"""
CourseMap error taxonomy
========================
Collaborator failures (Supabase, Gemini) surface as ``UpstreamError`` and are
converted into tagged result values before they reach a route handler.
A missing topic/label is ``NotFound``. Orphan labels are *not* errors.
"""
from __future__ import annotations


class CourseMapError(Exception):
    """Base class for every error raised by the backend modules."""


class NotFound(CourseMapError, LookupError):
    """A topic or label referenced by id could not be resolved."""


class ConfigError(CourseMapError):
    """Required configuration (credentials, keys) is missing."""


class InvalidTransition(CourseMapError, ValueError):
    """A quiz event was applied in a state that does not accept it."""


class UpstreamError(CourseMapError):
    """The storage or LLM collaborator failed (quota, network, bad payload)."""

    def __init__(self, error: str, message: str = "", status_code: int = 500) -> None:
        super().__init__(message or error)
        self.error = error
        self.message = message or error
        self.status_code = status_code
