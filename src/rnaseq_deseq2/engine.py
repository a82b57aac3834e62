"""
Engine interface for the differential expression statistics.

The workflow never talks to DESeq2 directly. Stages receive an object
satisfying :class:`DifferentialExpressionEngine` and only use the operations
declared here, so the statistics backend can be swapped without touching the
rest of the pipeline.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Protocol, Sequence, Union, runtime_checkable
import pandas as pd

RESULT_COLUMNS = ["baseMean", "log2FoldChange", "lfcSE", "pvalue", "padj"]


@dataclass(frozen=True)
class ContrastSpec:
    """A pairwise comparison between two levels of a categorical factor.

    Attributes:
        target: Level placed in the numerator of the fold change.
        reference: Level placed in the denominator.
        factor: Column of the sample design holding the levels.
        name: Label used in output file names. Defaults to
            ``"<target>_vs_<reference>"``.
    """
    target: str
    reference: str
    factor: str = "condition"
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.target == self.reference:
            raise ValueError(
                f"Contrast levels must differ, got '{self.target}' twice"
            )
        if self.name is None:
            object.__setattr__(self, "name", f"{self.target}_vs_{self.reference}")

    def as_r_contrast(self) -> list[str]:
        """The ``c(factor, target, reference)`` triple used by DESeq2."""
        return [self.factor, self.target, self.reference]


@dataclass
class FittedModel:
    """Container for a fitted count model.

    Attributes:
        handle: Engine-specific fitted object (a DESeqDataSet for DESeq2).
        sample_names: Sample (column) names the model was fitted on.
        feature_names: Gene (row) names the model was fitted on.
        design: Sample design table (index = sample, columns condition/batch).
        formula: Design formula used for fitting.
        metadata: Additional engine metadata.
    """
    handle: Any = None
    sample_names: Optional[Sequence[str]] = None
    feature_names: Optional[Sequence[str]] = None
    design: Optional[pd.DataFrame] = None
    formula: str = "~ condition"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def levels(self, factor: str = "condition") -> list[str]:
        """Distinct levels of a design factor, in order of first appearance."""
        if self.design is None or factor not in self.design.columns:
            raise KeyError(f"Factor '{factor}' not found in the model design")
        return list(pd.unique(self.design[factor]))


@dataclass
class ContrastResult:
    """Per-gene statistics of one contrast.

    Attributes:
        table: DataFrame indexed by gene id with at least the columns in
            ``RESULT_COLUMNS`` (``stat`` when the engine provides it).
        spec: The contrast these statistics belong to.
        variant: ``"raw"`` for model coefficients, ``"shrunken"`` for
            empirical-Bayes shrunken estimates.
    """
    table: pd.DataFrame
    spec: ContrastSpec
    variant: Literal["raw", "shrunken"] = "raw"

    def __len__(self) -> int:
        return len(self.table)


@runtime_checkable
class DifferentialExpressionEngine(Protocol):
    """Operations the workflow needs from a statistics backend."""

    def fit(self, counts: Any, design: str) -> FittedModel:
        """Fit the count model on a SummarizedExperiment with a design formula."""
        ...

    def contrast(self, model: FittedModel, spec: ContrastSpec, alpha: float = 0.05) -> ContrastResult:
        """Unshrunken per-gene results for a contrast."""
        ...

    def shrink(self, model: FittedModel, spec: ContrastSpec, alpha: float = 0.05) -> ContrastResult:
        """Shrunken per-gene results for a contrast."""
        ...

    def transform(self, model: FittedModel) -> pd.DataFrame:
        """Variance-stabilized expression, genes x samples."""
        ...

    def save(self, model: FittedModel, path: Union[str, Path]) -> None:
        ...

    def load(self, path: Union[str, Path]) -> FittedModel:
        ...


def standardize_result_table(df: pd.DataFrame) -> pd.DataFrame:
    """Check and order the columns of an engine result table.

    Raises:
        KeyError: If a required result column is missing.
    """
    missing = [c for c in RESULT_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"Result table lacks columns {missing}; got {list(df.columns)}")
    extra = [c for c in df.columns if c not in RESULT_COLUMNS]
    out = df[RESULT_COLUMNS + extra].copy()
    out.index = out.index.astype(str)
    out.index.name = "gene_id"
    return out
