"""
Shrink log2 fold changes using DESeq2::lfcShrink.

``normal`` and ``ashr`` accept the contrast directly. ``apeglm`` works on a
model coefficient, so it is only available when the contrast reference is
the base level of the factor.
"""

from __future__ import annotations
from typing import Literal

from ..engine import ContrastResult, ContrastSpec, FittedModel, standardize_result_table
from .utils import _prep_deseq2, results_to_pandas
from .checks import check_fitted_model, check_contrast_levels


def lfc_shrink(
    model: FittedModel,
    spec: ContrastSpec,
    type: Literal["normal", "ashr", "apeglm"] = "normal",
    alpha: float = 0.05,
    **kwargs
) -> ContrastResult:
    """
    Empirical-Bayes shrunken results of a two-level comparison.

    Wraps ``DESeq2::lfcShrink``. The unshrunken results are computed first
    and passed as ``res`` so p-values stay identical between variants.

    Args:
        model: FittedModel from deseq().
        spec: Contrast to shrink.
        type: Shrinkage estimator: "normal", "ashr" or "apeglm". Default: "normal".
        alpha: Significance level for the underlying results. Default: 0.05.
        **kwargs: Additional args forwarded to R function.

    Returns:
        ContrastResult (variant "shrunken").

    Raises:
        ValueError: If ``type`` is unknown, or "apeglm" is requested for a
            contrast that is not a model coefficient.
    """
    check_fitted_model(model)
    check_contrast_levels(model, spec)
    if type not in ("normal", "ashr", "apeglm"):
        raise ValueError(f"Unknown shrinkage type '{type}'")

    r, pkg = _prep_deseq2()
    contrast_r = r.StrVector(spec.as_r_contrast())
    res_r = pkg.results(model.handle, contrast=contrast_r, alpha=alpha)

    if type == "apeglm":
        coef = f"{spec.factor}_{spec.target}_vs_{spec.reference}"
        names = [str(n) for n in pkg.resultsNames(model.handle)]
        if coef not in names:
            raise ValueError(
                f"apeglm needs coefficient '{coef}', available: {names}; "
                f"use type='normal' or 'ashr' for this contrast"
            )
        shrunk_r = pkg.lfcShrink(model.handle, coef=coef, res=res_r, type=type, quiet=True, **kwargs)
    else:
        shrunk_r = pkg.lfcShrink(
            model.handle, contrast=contrast_r, res=res_r, type=type, quiet=True, **kwargs
        )

    table = standardize_result_table(results_to_pandas(shrunk_r))
    return ContrastResult(table=table, spec=spec, variant="shrunken")
