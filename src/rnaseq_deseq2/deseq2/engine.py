"""
DESeq2 implementation of the differential expression engine interface.
"""

from __future__ import annotations
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Literal, Union
import pandas as pd
from rpy2.rinterface_lib.embedded import RRuntimeError

from ..engine import ContrastResult, ContrastSpec, FittedModel
from ..errors import ModelFittingError
from .deseq import count_nonconverged, deseq, load_model, save_model
from .lfc_shrink import lfc_shrink
from .results import results
from .vst import vst

logger = logging.getLogger(__name__)


@contextmanager
def _r_errors(what: str, source: Any = None) -> Iterator[None]:
    """Re-raise R runtime errors as ModelFittingError."""
    try:
        yield
    except RRuntimeError as err:
        raise ModelFittingError(f"DESeq2 failed to {what}: {err}".strip(), source=source) from err


class DESeq2Engine:
    """Differential expression engine backed by DESeq2.

    Attributes:
        shrink_type: Estimator used by :meth:`shrink`.
        fit_type: Dispersion trend fit type.
        blind_vst: Whether the variance-stabilizing transform ignores the design.
    """

    name = "DESeq2"

    def __init__(
        self,
        shrink_type: Literal["normal", "ashr", "apeglm"] = "normal",
        fit_type: str = "parametric",
        blind_vst: bool = False,
    ) -> None:
        self.shrink_type = shrink_type
        self.fit_type = fit_type
        self.blind_vst = blind_vst

    def fit(self, counts: Any, design: str) -> FittedModel:
        with _r_errors("fit the model", source=design):
            model = deseq(counts, design=design, fit_type=self.fit_type)
            n_bad = count_nonconverged(model)
        n_genes = len(model.feature_names or [])
        if n_genes and n_bad == n_genes:
            raise ModelFittingError(
                f"None of the {n_genes} genes converged", source=design
            )
        if n_bad:
            logger.warning("%d of %d genes did not converge in the GLM fit", n_bad, n_genes)
        model.metadata["nonconverged"] = n_bad
        return model

    def contrast(self, model: FittedModel, spec: ContrastSpec, alpha: float = 0.05) -> ContrastResult:
        with _r_errors("extract results", source=spec.name):
            return results(model, spec, alpha=alpha)

    def shrink(self, model: FittedModel, spec: ContrastSpec, alpha: float = 0.05) -> ContrastResult:
        with _r_errors("shrink fold changes", source=spec.name):
            return lfc_shrink(model, spec, type=self.shrink_type, alpha=alpha)

    def transform(self, model: FittedModel) -> pd.DataFrame:
        with _r_errors("transform counts"):
            return vst(model, blind=self.blind_vst)

    def save(self, model: FittedModel, path: Union[str, Path]) -> None:
        save_model(model, path)

    def load(self, path: Union[str, Path]) -> FittedModel:
        with _r_errors("read the persisted model", source=str(path)):
            return load_model(path)
