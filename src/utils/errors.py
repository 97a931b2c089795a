"""Failure taxonomy for the turn-generation pipeline.

Only ``TransportError`` is ever shown to the player. The ``ResponseError``
family degrades silently to a fallback story.
"""
from __future__ import annotations

from typing import Optional


class NarrativeError(Exception):
    """Base class for every failure raised by the pipeline."""


class TransportError(NarrativeError):
    """The backend could not be reached, answered non-2xx, or sent no text."""

    def __init__(self, detail: str, status: Optional[int] = None) -> None:
        self.detail = detail
        self.status = status
        message = f"{status} {detail}" if status is not None else detail
        super().__init__(message)


class ResponseError(NarrativeError):
    """The backend answered, but its text is not a usable turn."""


class MalformedResponse(ResponseError):
    """No parseable JSON object in the raw text."""


class InvalidShape(ResponseError):
    """JSON parsed, but ``story`` or ``choices`` is missing or mistyped."""
