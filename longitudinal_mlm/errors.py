"""Exceptions raised by the analysis pipeline."""
from __future__ import annotations

from typing import Iterable


class AnalysisError(Exception):
    """Base class for every failure the pipeline reports."""


class ParseError(AnalysisError, ValueError):
    """The input file is not delimited text with a header row."""


class SchemaMismatch(AnalysisError, KeyError):
    """Expected columns are absent, or subject ids are not unique."""

    def __init__(self, message: str, columns: Iterable[str] = ()):
        super().__init__(message)
        self.message = message
        self.columns = tuple(columns)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


class UnmappedCategory(AnalysisError, ValueError):
    """An occasion label has no entry in the time recode table."""

    def __init__(self, labels: Iterable[str]):
        self.labels = tuple(labels)
        super().__init__(
            "No time index for occasion label(s): " + ", ".join(map(str, self.labels))
        )


class ModelFitFailure(AnalysisError, RuntimeError):
    """statsmodels raised, or the optimiser did not converge."""

    def __init__(self, model: str, reason: str, warnings: Iterable[str] = ()):
        self.model = model
        self.reason = reason
        self.warnings = tuple(warnings)
        detail = f"{model}: {reason}"
        if self.warnings:
            detail += " [" + "; ".join(self.warnings) + "]"
        super().__init__(detail)
