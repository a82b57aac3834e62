"""rnaseq_deseq2: RNA-seq differential expression workflow on top of DESeq2.

The workflow stages are plain Python; the statistics are delegated to an
engine. The DESeq2 engine lives in the ``deseq2`` submodule, which is loaded
lazily so R is only checked when it is actually used.

Usage:
    >>> from rnaseq_deseq2 import WorkflowConfig, run_workflow
    >>> cfg = WorkflowConfig(counts_path="featureCounts.txt", annotation_path="annot.txt")
    >>> # DESeq2 is NOT loaded yet - no R dependency check
    >>>
    >>> result = run_workflow(cfg)  # NOW rnaseq_deseq2.deseq2 is imported
"""

from __future__ import annotations

import importlib

# Core exports that don't require R
from .annotation import AnnotationTable, fetch_annotation, load_annotation, parse_annotation
from .config import WorkflowConfig
from .contrast import ContrastSummary, Significance, classify, extract_results, summarize
from .design import infer_sample_design, parse_sample_name
from .diagnostics import run_diagnostics
from .engine import ContrastResult, ContrastSpec, DifferentialExpressionEngine, FittedModel
from .errors import (
    FileFormatError,
    MergeKeyMismatchError,
    ModelFittingError,
    NetworkError,
    ParseError,
    UnmatchedKeyWarning,
    WorkflowError,
)
from .loader import CountTable, load_count_table
from .modeling import fit_model
from .normalization import compute_fpkm, compute_tpm, normalize, write_normalization_workbook
from .pipeline import WorkflowResult, run_workflow
from .report import build_report_table, write_rank_file, write_report
from .r_utils import ensure_r_dependencies, r_packages_available
from .volcano_plot import volcano_plot

__version__ = "0.1.0"

__all__ = [
    "AnnotationTable",
    "fetch_annotation",
    "load_annotation",
    "parse_annotation",
    "WorkflowConfig",
    "ContrastSummary",
    "Significance",
    "classify",
    "extract_results",
    "summarize",
    "infer_sample_design",
    "parse_sample_name",
    "run_diagnostics",
    "ContrastResult",
    "ContrastSpec",
    "DifferentialExpressionEngine",
    "FittedModel",
    "FileFormatError",
    "MergeKeyMismatchError",
    "ModelFittingError",
    "NetworkError",
    "ParseError",
    "UnmatchedKeyWarning",
    "WorkflowError",
    "CountTable",
    "load_count_table",
    "fit_model",
    "compute_fpkm",
    "compute_tpm",
    "normalize",
    "write_normalization_workbook",
    "WorkflowResult",
    "run_workflow",
    "build_report_table",
    "write_rank_file",
    "write_report",
    "ensure_r_dependencies",
    "r_packages_available",
    "volcano_plot",
    # Lazy-loaded submodules
    "deseq2",
]

# Submodules to be lazily loaded
_LAZY_SUBMODULES = {"deseq2"}


def __getattr__(name: str):
    """Lazy loading of submodules per PEP 562."""
    if name in _LAZY_SUBMODULES:
        module = importlib.import_module(f".{name}", __name__)
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    """Include lazy submodules in dir() output."""
    return list(__all__)
