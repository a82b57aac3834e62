"""
Variance-stabilizing transform using DESeq2::vst.
"""

from __future__ import annotations
import pandas as pd

from ..engine import FittedModel
from .utils import _ASSAY_MATRIX, _prep_deseq2, _r_function, r_matrix_to_pandas
from .checks import check_fitted_model

# vst() estimates the trend on a subset of this many genes
VST_NSUB = 1000


def vst(model: FittedModel, blind: bool = False) -> pd.DataFrame:
    """
    Variance-stabilized expression matrix.

    Wraps ``DESeq2::vst``; models with fewer than ``VST_NSUB`` genes use
    ``DESeq2::varianceStabilizingTransformation`` instead, which vst
    requires.

    Args:
        model: FittedModel from deseq().
        blind: Ignore the design when estimating dispersions. Default: False.

    Returns:
        pd.DataFrame: genes x samples.
    """
    check_fitted_model(model)
    r, pkg = _prep_deseq2()
    n_genes = int(r.ro.baseenv["nrow"](model.handle)[0])
    if n_genes < VST_NSUB:
        vsd = pkg.varianceStabilizingTransformation(model.handle, blind=blind)
    else:
        vsd = pkg.vst(model.handle, blind=blind)
    return r_matrix_to_pandas(_r_function(_ASSAY_MATRIX)(vsd))
