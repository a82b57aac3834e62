"""
Input validation utilities for DESeq2 functions.

Provides centralized checks for SummarizedExperiment variants, sample
designs and fitted models.
"""

from __future__ import annotations
from typing import Any

from ..engine import ContrastSpec, FittedModel
from ..errors import ModelFittingError


def check_se(se: Any, name: str = "se") -> None:
    """Check that input is a SummarizedExperiment-like object.

    Accepts any object with assays and assay_names attributes
    (duck typing for SE, RSE, SCE).
    """
    required_attrs = ["assays", "assay_names"]
    for attr in required_attrs:
        if not hasattr(se, attr):
            raise TypeError(
                f"Expected `{name}` to be a SummarizedExperiment-like object "
                f"(SE, RSE or SCE), got {type(se).__name__} which lacks '{attr}'"
            )


def check_assay_exists(se: Any, assay: str) -> None:
    """Check that the specified assay exists in the SummarizedExperiment."""
    if assay not in se.assay_names:
        available = list(se.assay_names)
        raise KeyError(
            f"Assay '{assay}' not found. Available assays: {available}"
        )


def check_design_column(se: Any, column: str) -> None:
    """Check that column_data holds the design factor."""
    coldata = se.get_column_data()
    if coldata is None or column not in coldata.column_names:
        raise KeyError(f"Design factor '{column}' not found in column_data")


def check_fitted_model(model: Any) -> None:
    """Check that input is a FittedModel with a fitted handle."""
    if not isinstance(model, FittedModel):
        raise TypeError(
            f"Expected a FittedModel, got {type(model).__name__}"
        )
    if model.handle is None:
        raise ValueError("FittedModel.handle is None - model has not been fitted")


def check_contrast_levels(model: FittedModel, spec: ContrastSpec) -> None:
    """Check that both contrast levels exist in the model design."""
    levels = model.levels(spec.factor)
    missing = [lvl for lvl in (spec.target, spec.reference) if lvl not in levels]
    if missing:
        raise ModelFittingError(
            f"Contrast levels {missing} not found in factor '{spec.factor}' "
            f"(available: {levels})",
            source=spec.name,
        )
