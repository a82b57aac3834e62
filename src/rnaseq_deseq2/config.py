"""
Workflow configuration.

All parameters of a run live in a single :class:`WorkflowConfig` that is
passed explicitly to every stage.

Example:
    >>> from rnaseq_deseq2.config import WorkflowConfig
    >>> from rnaseq_deseq2.engine import ContrastSpec
    >>> cfg = WorkflowConfig(
    ...     counts_path="featureCounts.txt",
    ...     annotation_url="https://example.org/annotation.txt",
    ...     contrasts=[ContrastSpec("treated", "control")],
    ... )
"""

from __future__ import annotations
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from .engine import ContrastSpec

DEFAULT_SUFFIX_PATTERN = r"(Aligned\.sortedByCoord\.out)?(\.sorted)?(\.dedup)?\.bam$"

ShrinkType = Literal["normal", "ashr", "apeglm"]


@dataclass
class WorkflowConfig:
    """Configuration of one workflow run.

    Attributes:
        counts_path: Tab-separated feature-count table.
        annotation_url: Remote plain-text annotation table.
        annotation_path: Local annotation table, used instead of the URL when set.
        output_dir: Directory receiving every output file.
        min_count: Minimum total count across samples for a gene to be kept.
        n_meta_columns: Leading metadata columns of the count table.
        sample_suffix_pattern: Regex stripped from the end of sample headers.
        q_cutoff: Adjusted p-value threshold (strict ``<``).
        lfc_cutoff: Absolute log2 fold-change threshold (strict ``>``).
        contrasts: Contrasts to analyze; empty means all levels against the first.
        model_path: File name of the persisted fitted model.
        reuse_model: Load ``model_path`` instead of refitting when it exists.
        shrink_type: Shrinkage estimator passed to the engine.
        annotation_timeout: Seconds before the annotation download gives up.
        annotation_id_column: Identifier column; first column when None.
        annotation_name_column: Display-name column; second column when None.
        strict_annotation_join: Raise instead of warn on unmatched gene ids.
        pca_top_genes: Number of most variable genes used for PCA.
        volcano_lfc_limit: Absolute x-axis bound of volcano plots.
        volcano_q_limit: Upper y-axis bound of volcano plots.
        workbook_name: File name of the normalization workbook.
    """
    counts_path: Optional[Union[str, Path]] = None
    annotation_url: Optional[str] = None
    annotation_path: Optional[Union[str, Path]] = None
    output_dir: Union[str, Path] = "."
    min_count: int = 10
    n_meta_columns: int = 5
    sample_suffix_pattern: str = DEFAULT_SUFFIX_PATTERN
    q_cutoff: float = 0.05
    lfc_cutoff: float = 1.0
    contrasts: List[ContrastSpec] = field(default_factory=list)
    model_path: str = "raw.dds.rds"
    reuse_model: bool = True
    shrink_type: ShrinkType = "normal"
    annotation_timeout: Optional[float] = 60.0
    annotation_id_column: Optional[str] = None
    annotation_name_column: Optional[str] = None
    strict_annotation_join: bool = False
    pca_top_genes: int = 500
    volcano_lfc_limit: float = 10.0
    volcano_q_limit: float = 50.0
    workbook_name: str = "Normalization.xlsx"

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        if self.counts_path is not None:
            self.counts_path = Path(self.counts_path)
        if self.annotation_path is not None:
            self.annotation_path = Path(self.annotation_path)
        if self.min_count < 0:
            raise ValueError(f"min_count must be >= 0, got {self.min_count}")
        if self.n_meta_columns < 2:
            raise ValueError(f"n_meta_columns must be >= 2, got {self.n_meta_columns}")
        if not 0 < self.q_cutoff <= 1:
            raise ValueError(f"q_cutoff must be in (0, 1], got {self.q_cutoff}")
        if self.lfc_cutoff < 0:
            raise ValueError(f"lfc_cutoff must be >= 0, got {self.lfc_cutoff}")
        if self.shrink_type not in ("normal", "ashr", "apeglm"):
            raise ValueError(f"Unknown shrink_type '{self.shrink_type}'")
        if self.volcano_lfc_limit <= 0 or self.volcano_q_limit <= 0:
            raise ValueError("Volcano axis limits must be positive")
        if self.pca_top_genes < 2:
            raise ValueError(f"pca_top_genes must be >= 2, got {self.pca_top_genes}")
        self.contrasts = [
            c if isinstance(c, ContrastSpec) else ContrastSpec(**c)
            for c in self.contrasts
        ]

    @property
    def model_file(self) -> Path:
        """Location of the persisted model."""
        return self.output_dir / self.model_path

    @property
    def workbook_file(self) -> Path:
        return self.output_dir / self.workbook_name

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "WorkflowConfig":
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        return cls(**dict(values))

    @classmethod
    def from_toml(cls, path: Union[str, Path], **overrides: Any) -> "WorkflowConfig":
        """Load a config from the ``[workflow]`` table of a TOML file.

        Args:
            path: TOML file.
            **overrides: Values taking precedence over the file (``None`` is ignored).

        Example:
            A file like::

                [workflow]
                counts_path = "counts.txt"
                annotation_url = "https://example.org/annot.txt"
                q_cutoff = 0.01

                [[workflow.contrasts]]
                target = "treated"
                reference = "control"
        """
        with open(path, "rb") as fh:
            data = tomllib.load(fh)
        values: Dict[str, Any] = dict(data.get("workflow", {}))
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_mapping(values)
