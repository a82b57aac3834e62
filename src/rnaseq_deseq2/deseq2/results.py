"""
Extract per-gene results using DESeq2::results.
"""

from __future__ import annotations

from ..engine import ContrastResult, ContrastSpec, FittedModel, standardize_result_table
from .utils import _prep_deseq2, results_to_pandas
from .checks import check_fitted_model, check_contrast_levels


def results(
    model: FittedModel,
    spec: ContrastSpec,
    alpha: float = 0.05,
    independent_filtering: bool = True,
    **kwargs
) -> ContrastResult:
    """
    Unshrunken results of a two-level comparison.

    Wraps ``DESeq2::results`` with ``contrast = c(factor, target, reference)``.

    Args:
        model: FittedModel from deseq().
        spec: Contrast to extract.
        alpha: Significance level used for independent filtering. Default: 0.05.
        independent_filtering: Apply DESeq2's independent filtering. Default: True.
        **kwargs: Additional args forwarded to R function.

    Returns:
        ContrastResult (variant "raw") with baseMean, log2FoldChange, lfcSE,
        stat, pvalue and padj per gene.

    Example:
        >>> res = deseq2.results(model, ContrastSpec("treated", "control"))
        >>> res.table.head()
    """
    check_fitted_model(model)
    check_contrast_levels(model, spec)

    r, pkg = _prep_deseq2()
    res_r = pkg.results(
        model.handle,
        contrast=r.StrVector(spec.as_r_contrast()),
        alpha=alpha,
        independentFiltering=independent_filtering,
        **kwargs
    )
    table = standardize_result_table(results_to_pandas(res_r))
    return ContrastResult(table=table, spec=spec, variant="raw")
