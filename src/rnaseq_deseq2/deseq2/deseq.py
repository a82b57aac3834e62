"""
Fit the negative-binomial GLM using DESeq2::DESeq.

Builds a DESeqDataSet from a SummarizedExperiment and runs size-factor
estimation, dispersion estimation and the Wald-test fit in one call.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Optional, TypeVar, Union
import numpy as np
import pandas as pd

from ..engine import FittedModel
from .utils import (
    _COLDATA_FRAME,
    _DESIGN_FORMULA,
    _NONCONVERGED,
    _prep_deseq2,
    _r_function,
    design_to_r_frame,
    numpy_to_r_matrix,
    r_frame_to_pandas,
)
from .checks import check_se, check_assay_exists, check_design_column, check_fitted_model

logger = logging.getLogger(__name__)

# Type variable for SummarizedExperiment variants
SE = TypeVar("SE")


def _column_design(se: Any) -> pd.DataFrame:
    coldata = se.get_column_data()
    names = [str(s) for s in se.column_names]
    return pd.DataFrame(
        {col: [str(v) for v in coldata[col]] for col in coldata.column_names},
        index=pd.Index(names, name="sample"),
    )


def _formula_factors(design: str) -> list[str]:
    rhs = design.split("~", 1)[-1]
    return [t.strip() for t in rhs.replace("*", "+").replace(":", "+").split("+") if t.strip()]


def deseq(
    se: SE,
    design: str = "~ condition",
    assay: str = "counts",
    fit_type: str = "parametric",
    test: str = "Wald",
    quiet: bool = True,
    **kwargs
) -> FittedModel:
    """
    Fit the DESeq2 model.

    Wraps ``DESeq2::DESeqDataSetFromMatrix`` followed by ``DESeq2::DESeq``.
    The factors named in ``design`` are read from ``column_data`` and passed
    as R factors, keeping their order of first appearance as level order.

    Args:
        se: SummarizedExperiment with an integer count assay.
        design: Design formula. Default: "~ condition".
        assay: Counts assay name. Default: "counts".
        fit_type: Dispersion fit type. Default: "parametric".
        test: "Wald" or "LRT". Default: "Wald".
        quiet: Suppress DESeq2 progress messages. Default: True.
        **kwargs: Additional args forwarded to ``DESeq``.

    Returns:
        FittedModel wrapping the fitted DESeqDataSet.

    Raises:
        TypeError: If se lacks required attributes.
        KeyError: If the assay or a design factor does not exist.

    Example:
        >>> import rnaseq_deseq2.deseq2 as deseq2
        >>> model = deseq2.deseq(se, design="~ condition")
        >>> model.handle  # DESeqDataSet
    """
    check_se(se)
    check_assay_exists(se, assay)
    factors = _formula_factors(design)
    for factor in factors:
        check_design_column(se, factor)

    r, pkg = _prep_deseq2()

    counts = np.asarray(se.assay(assay))
    counts_r = numpy_to_r_matrix(
        np.rint(counts).astype(np.int32),
        rownames=[str(g) for g in se.row_names],
        colnames=[str(s) for s in se.column_names],
    )
    sample_design = _column_design(se)
    coldata_r = design_to_r_frame(sample_design)

    dds = pkg.DESeqDataSetFromMatrix(
        countData=counts_r,
        colData=coldata_r,
        design=r.ro.Formula(design),
    )
    dds = pkg.DESeq(dds, fitType=fit_type, test=test, quiet=quiet, **kwargs)

    return FittedModel(
        handle=dds,
        sample_names=list(sample_design.index),
        feature_names=[str(g) for g in se.row_names],
        design=sample_design,
        formula=design,
        metadata={"engine": "DESeq2", "fit_type": fit_type, "test": test},
    )


def count_nonconverged(model: FittedModel) -> int:
    """Number of genes whose coefficient fit did not converge."""
    check_fitted_model(model)
    _prep_deseq2()
    return int(_r_function(_NONCONVERGED)(model.handle)[0])


def save_model(model: FittedModel, path: Union[str, Path]) -> Path:
    """Persist the DESeqDataSet with ``saveRDS``."""
    check_fitted_model(model)
    r, _ = _prep_deseq2()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    r.ro.baseenv["saveRDS"](model.handle, file=str(path))
    return path


def load_model(path: Union[str, Path]) -> FittedModel:
    """Restore a FittedModel from a DESeqDataSet saved with ``saveRDS``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No persisted model at {path}")
    r, _ = _prep_deseq2()
    dds = r.ro.baseenv["readRDS"](str(path))

    design = r_frame_to_pandas(_r_function(_COLDATA_FRAME)(dds))
    design.index = design.index.astype(str)
    design.index.name = "sample"
    feature_names = [str(g) for g in r.ro.baseenv["rownames"](dds)]
    formula = str(_r_function(_DESIGN_FORMULA)(dds)[0])

    return FittedModel(
        handle=dds,
        sample_names=list(design.index),
        feature_names=feature_names,
        design=design,
        formula=formula,
        metadata={"engine": "DESeq2", "source": str(path)},
    )
