"""Error taxonomy for the scoring pipeline.

``ShapeError`` and ``RangeError`` reject a submission before any scoring
happens.  ``ConfigError`` is raised while loading a definition; scoring raises it
only for a definition assembled by hand with an empty dimension window.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "ScoringError",
    "ShapeError",
    "RangeError",
    "ConfigError",
    "UnknownAssessmentError",
]


class ScoringError(Exception):
    """Base class for everything the engine raises on purpose."""


class ShapeError(ScoringError, ValueError):
    """Response vector does not match the definition's item layout."""

    def __init__(self, message: str, *, index: Optional[int] = None, item_id: Optional[str] = None):
        super().__init__(message)
        self.index = index
        self.item_id = item_id


class RangeError(ScoringError, ValueError):
    """A response value falls outside its item's declared scale or option set."""

    def __init__(self, message: str, *, index: Optional[int] = None, item_id: Optional[str] = None):
        super().__init__(message)
        self.index = index
        self.item_id = item_id


class ConfigError(ScoringError):
    """An assessment definition is internally inconsistent."""

    def __init__(self, message: str, *, assessment_id: Optional[str] = None):
        prefix = f"[{assessment_id}] " if assessment_id else ""
        super().__init__(prefix + message)
        self.assessment_id = assessment_id


class UnknownAssessmentError(ScoringError, KeyError):
    def __str__(self) -> str:
        return f"unknown assessment: {self.args[0] if self.args else ''}"
