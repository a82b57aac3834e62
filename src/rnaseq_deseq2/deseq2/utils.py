from functools import lru_cache
from typing import Any, Optional, Sequence
import numpy as np
import pandas as pd


@lru_cache(maxsize=1)
def _prep_deseq2():
    """Lazily prepare the DESeq2 runtime.

    Returns:
        Tuple[Any, Any]: A tuple ``(r_env, deseq2_pkg)`` where ``r_env`` is
        the lazy rpy2 environment from ``bioc2ri.lazy_r_env`` and
        ``deseq2_pkg`` is the imported R ``DESeq2`` package.

    Notes:
        The result is cached (LRU) to avoid repeated imports.
    """
    from bioc2ri.lazy_r_env import get_r_environment

    r = get_r_environment()
    deseq2_pkg = r.lazy_import_r_packages("DESeq2")
    return r, deseq2_pkg


@lru_cache(maxsize=None)
def _r_function(source: str) -> Any:
    """Compile (once) an R closure from source."""
    r, _ = _prep_deseq2()
    return r.ro.r(source)


# R helpers operating on DESeq2 S4 objects
_RESULTS_TO_FRAME = """
function(res) {
    df <- data.frame(row.names = rownames(res))
    for (col in colnames(res)) df[[col]] <- as.numeric(res[[col]])
    df
}
"""
_ASSAY_MATRIX = "function(x) SummarizedExperiment::assay(x)"
_COLDATA_FRAME = """
function(dds) {
    cd <- SummarizedExperiment::colData(dds)
    df <- data.frame(row.names = colnames(dds))
    for (col in setdiff(colnames(cd), "sizeFactor")) df[[col]] <- as.character(cd[[col]])
    df
}
"""
_NONCONVERGED = """
function(dds) {
    bc <- S4Vectors::mcols(dds)$betaConv
    if (is.null(bc)) 0L else sum(!is.na(bc) & !bc)
}
"""
_DESIGN_FORMULA = "function(dds) paste(deparse(DESeq2::design(dds)), collapse = '')"


def numpy_to_r_matrix(mat, rownames=None, colnames=None):
    from bioc2ri.rutils import is_r
    from bioc2ri.rnames import set_rownames, set_colnames
    from bioc2ri import numpy_plugin
    np_eng = numpy_plugin()

    rmat = np_eng.py2r(mat)
    if rownames is not None:
        if not is_r(rownames):
            rownames = np.asarray(rownames, dtype=str)
        rmat = set_rownames(rmat, rownames)
    if colnames is not None:
        if not is_r(colnames):
            colnames = np.asarray(colnames, dtype=str)
        rmat = set_colnames(rmat, colnames)
    return rmat


def design_to_r_frame(design: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> Any:
    """Convert a sample design to an R data.frame of factors.

    Factor levels keep the order of first appearance (or the categorical
    order when the column is a pandas Categorical).
    """
    r, _ = _prep_deseq2()
    factor = r.ro.baseenv["factor"]
    columns = list(columns) if columns is not None else list(design.columns)

    cols = {}
    for col in columns:
        values = design[col]
        if isinstance(values.dtype, pd.CategoricalDtype):
            levels = [str(v) for v in values.cat.categories if v in set(values)]
        else:
            levels = [str(v) for v in pd.unique(values)]
        cols[col] = factor(r.StrVector([str(v) for v in values]), levels=r.StrVector(levels))

    return r.ro.baseenv["data.frame"](
        **cols,
        **{"row.names": r.StrVector([str(s) for s in design.index]), "check.names": False},
    )


def r_frame_to_pandas(frame_r: Any) -> pd.DataFrame:
    """Convert an R data.frame to pandas, keeping row names as index."""
    r, _ = _prep_deseq2()
    with r.localconverter(r.default_converter + r.pandas2ri.converter):
        df = r.get_conversion().rpy2py(frame_r)
    return df


def r_matrix_to_pandas(mat_r: Any) -> pd.DataFrame:
    """Convert an R matrix with dimnames to a pandas DataFrame."""
    r, _ = _prep_deseq2()
    rownames = [str(x) for x in r.ro.baseenv["rownames"](mat_r)]
    colnames = [str(x) for x in r.ro.baseenv["colnames"](mat_r)]
    with r.localconverter(r.default_converter + r.numpy2ri.converter):
        arr = r.get_conversion().rpy2py(mat_r)
    return pd.DataFrame(np.asarray(arr, dtype=float), index=rownames, columns=colnames)


def results_to_pandas(res_r: Any) -> pd.DataFrame:
    """Convert a DESeqResults object to a numeric pandas DataFrame."""
    return r_frame_to_pandas(_r_function(_RESULTS_TO_FRAME)(res_r))
