"""
Fit (or reload) the count model for a count table.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional, Tuple, Union
import pandas as pd

from .design import design_formula, infer_sample_design
from .engine import DifferentialExpressionEngine, FittedModel
from .errors import ModelFittingError
from .loader import CountTable

logger = logging.getLogger(__name__)


def check_design(design: pd.DataFrame, factor: str = "condition") -> None:
    """Reject designs the model cannot be fitted on.

    Raises:
        ModelFittingError: If the factor has fewer than two levels or no
            level has a replicate.
    """
    sizes = design[factor].value_counts()
    sizes = sizes[sizes > 0]
    if len(sizes) < 2:
        raise ModelFittingError(
            f"Design needs at least two '{factor}' levels, got {list(sizes.index)}"
        )
    if (sizes < 2).all():
        raise ModelFittingError(
            f"No '{factor}' level has a replicate ({dict(sizes)}); dispersion cannot be estimated"
        )


def _matches(model: FittedModel, count_table: CountTable) -> bool:
    return (
        list(model.sample_names or []) == list(count_table.sample_names)
        and list(model.feature_names or []) == list(count_table.gene_ids)
    )


def fit_model(
    count_table: CountTable,
    engine: DifferentialExpressionEngine,
    model_path: Optional[Union[str, Path]] = None,
    reuse: bool = True,
) -> Tuple[FittedModel, pd.DataFrame]:
    """Infer the sample design and fit the count model.

    Args:
        count_table: Cleaned count table.
        engine: Statistics engine performing the fit.
        model_path: Where the fitted model is persisted. Not persisted when None.
        reuse: Load ``model_path`` instead of refitting when it exists and was
            fitted on the same samples and genes.

    Returns:
        ``(model, design)`` where design is the inferred sample design.

    Raises:
        ModelFittingError: On a degenerate design or an engine failure.
    """
    design = infer_sample_design(count_table.sample_names)
    logger.info(
        "Sample design: %s",
        ", ".join(f"{s}={row.condition}/{row.batch}" for s, row in design.iterrows()),
    )
    check_design(design)

    if model_path is not None and reuse and Path(model_path).exists():
        model = engine.load(model_path)
        if _matches(model, count_table):
            logger.info("Reusing fitted model from %s", model_path)
            return model, design
        logger.warning(
            "Persisted model %s was fitted on different samples or genes; refitting", model_path
        )

    formula = design_formula(design)
    se = count_table.to_summarized_experiment(design)
    logger.info("Fitting %s on %d genes x %d samples", formula, len(count_table), len(design))
    model = engine.fit(se, formula)

    if model_path is not None:
        engine.save(model, model_path)
        logger.info("Saved fitted model to %s", model_path)
    return model, design
