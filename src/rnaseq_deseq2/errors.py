"""
Error taxonomy for the workflow.

Every stage failure is raised as a subclass of :class:`WorkflowError`, which
records the stage that failed and the input it was working on, so that the
run can terminate with a message naming both.
"""

from __future__ import annotations
from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow stage failures.

    Attributes:
        stage: Name of the pipeline stage that failed.
        source: The input (path, URL, contrast name) being processed.
    """

    stage: str = "workflow"

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"[{self.stage}] {self.message} (input: {self.source})"
        return f"[{self.stage}] {self.message}"


class FileFormatError(WorkflowError):
    """Malformed or undersized count table."""

    stage = "loader"


class NetworkError(WorkflowError):
    """Annotation download failed."""

    stage = "annotation"


class ParseError(WorkflowError):
    """Annotation content could not be parsed."""

    stage = "annotation"


class ModelFittingError(WorkflowError):
    """Degenerate design or failure reported by the statistics engine."""

    stage = "model"


class MergeKeyMismatchError(WorkflowError):
    """Gene identifiers of two tables fail to align."""

    stage = "merge"


class UnmatchedKeyWarning(UserWarning):
    """Warning for identifiers left unmatched by a tolerated left join."""
