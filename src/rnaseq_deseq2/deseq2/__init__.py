"""DESeq2: Differential gene expression analysis based on the negative binomial distribution.

This module provides Python wrappers for the R DESeq2 package via rpy2.

Functional API:
    >>> import rnaseq_deseq2.deseq2 as deseq2
    >>> model = deseq2.deseq(se, design="~ condition")
    >>> raw = deseq2.results(model, ContrastSpec("treated", "control"))
    >>> shrunk = deseq2.lfc_shrink(model, ContrastSpec("treated", "control"))
    >>> vsd = deseq2.vst(model)

Engine API:
    >>> engine = deseq2.DESeq2Engine(shrink_type="normal")
    >>> model = engine.fit(se, "~ condition")
"""

# Check/install DESeq2 R package on module import
from ..r_utils import ensure_r_dependencies, BIOC_PACKAGES
ensure_r_dependencies(BIOC_PACKAGES)

from .deseq import deseq, count_nonconverged, save_model, load_model
from .results import results
from .lfc_shrink import lfc_shrink
from .vst import vst
from .engine import DESeq2Engine
from .utils import _prep_deseq2

__all__ = [
    # Functional API
    "deseq",
    "results",
    "lfc_shrink",
    "vst",
    "count_nonconverged",
    "save_model",
    "load_model",
    # Engine
    "DESeq2Engine",
    # Utilities
    "_prep_deseq2",
]
