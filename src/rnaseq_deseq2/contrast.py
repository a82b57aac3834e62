"""
Per-contrast results, significance calls and contrast plots.

Every call is independent: nothing is cached between contrasts.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Tuple, Union
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .engine import ContrastResult, ContrastSpec, DifferentialExpressionEngine, FittedModel
from .errors import ModelFittingError
from .volcano_plot import ma_plot, pvalue_histogram, volcano_plot

logger = logging.getLogger(__name__)


@dataclass
class Significance:
    """Boolean masks over the genes of one ContrastResult.

    ``up`` and ``down`` partition ``significant``.
    """
    significant: pd.Series
    up: pd.Series
    down: pd.Series


@dataclass(frozen=True)
class ContrastSummary:
    n_total: int
    n_significant: int
    n_up: int
    n_down: int
    plots: Dict[str, Path] = field(default_factory=dict, compare=False)


def check_contrast_levels(model: FittedModel, spec: ContrastSpec) -> None:
    """Check that the contrast factor and both of its levels are in the design.

    Raises:
        ModelFittingError: Naming the contrast, if the factor or a level is
            missing.
    """
    try:
        levels = [str(lvl) for lvl in model.levels(spec.factor)]
    except KeyError as err:
        raise ModelFittingError(
            f"Factor '{spec.factor}' is not part of the model design", source=spec.name
        ) from err
    missing = [lvl for lvl in (spec.target, spec.reference) if lvl not in levels]
    if missing:
        raise ModelFittingError(
            f"Contrast levels {missing} absent from factor '{spec.factor}' "
            f"(levels: {levels})",
            source=spec.name,
        )


def extract_results(
    model: FittedModel,
    spec: ContrastSpec,
    engine: DifferentialExpressionEngine,
    alpha: float = 0.05,
) -> Tuple[ContrastResult, ContrastResult]:
    """
    Unshrunken and shrunken results of one contrast.

    Args:
        model: Fitted model.
        spec: Contrast to extract.
        engine: Engine that fitted ``model``.
        alpha: Significance level used for independent filtering.

    Returns:
        ``(raw, shrunken)`` results, both keyed by gene identifier.

    Raises:
        ModelFittingError: If the contrast factor or one of its levels is
            not part of the model design.
    """
    check_contrast_levels(model, spec)
    raw = engine.contrast(model, spec, alpha=alpha)
    shrunken = engine.shrink(model, spec, alpha=alpha)
    logger.info("Extracted results for %s (%d genes)", spec.name, len(raw))
    return raw, shrunken


def classify(
    result: Union[ContrastResult, pd.DataFrame],
    q_cutoff: float = 0.05,
    lfc_cutoff: float = 1.0,
) -> Significance:
    """
    Call significant genes with strict thresholds.

    A gene is significant when ``padj < q_cutoff`` and
    ``|log2FoldChange| > lfc_cutoff``. Missing values are never significant.
    Significant genes are up-regulated for a positive fold change and
    down-regulated for a negative one.
    """
    table = result.table if isinstance(result, ContrastResult) else result
    padj = table["padj"].astype(float)
    lfc = table["log2FoldChange"].astype(float)
    significant = ((padj < q_cutoff) & (lfc.abs() > lfc_cutoff)).fillna(False).astype(bool)
    return Significance(
        significant=significant,
        up=significant & (lfc > 0),
        down=significant & (lfc < 0),
    )


def summarize(
    result: ContrastResult,
    significance: Significance,
    output_dir: Union[str, Path],
    q_cutoff: float = 0.05,
    lfc_cutoff: float = 1.0,
    lfc_limit: float = 10.0,
    q_limit: float = 50.0,
) -> ContrastSummary:
    """Count significant genes and write the contrast plots.

    Writes ``<name>.pvalue_hist.png``, ``<name>.padj_hist.png``,
    ``<name>.MA.png`` and ``<name>.volcano.png`` into ``output_dir``.

    Returns:
        Gene counts, with the written plot files in ``plots`` keyed by kind.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    name = result.spec.name
    table = result.table

    paths = {
        "pvalue": output_dir / f"{name}.pvalue_hist.png",
        "padj": output_dir / f"{name}.padj_hist.png",
        "ma": output_dir / f"{name}.MA.png",
        "volcano": output_dir / f"{name}.volcano.png",
    }
    figures = [
        pvalue_histogram(table["pvalue"], xlabel="p-value",
                         title=f"{name}: p-values", save_path=paths["pvalue"]),
        pvalue_histogram(table["padj"], xlabel="q-value (BH adjusted)",
                         title=f"{name}: q-values", save_path=paths["padj"]),
        ma_plot(table, significant=significance.significant,
                title=f"{name}: MA", save_path=paths["ma"]),
        volcano_plot(
            table,
            fdr_threshold=q_cutoff,
            logfc_threshold=lfc_cutoff,
            lfc_limit=lfc_limit,
            q_limit=q_limit,
            title=name.replace("_", " "),
            save_path=paths["volcano"],
        ),
    ]
    for fig in figures:
        plt.close(fig)

    summary = ContrastSummary(
        n_total=len(table),
        n_significant=int(significance.significant.sum()),
        n_up=int(significance.up.sum()),
        n_down=int(significance.down.sum()),
        plots=paths,
    )
    n_na = int(np.isnan(table["padj"].to_numpy(dtype=float)).sum())
    logger.info(
        "%s: %d of %d genes significant (%d up, %d down; q < %g, |LFC| > %g; %d without q-value)",
        name, summary.n_significant, summary.n_total, summary.n_up, summary.n_down,
        q_cutoff, lfc_cutoff, n_na,
    )
    return summary
