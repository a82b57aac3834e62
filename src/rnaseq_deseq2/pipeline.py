"""
End-to-end workflow: load, annotate, normalize, fit, diagnose, report.

Stages run strictly in order and share nothing but the values passed
between them and the :class:`~rnaseq_deseq2.config.WorkflowConfig`.
"""

from __future__ import annotations
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional
import pandas as pd

from .annotation import AnnotationTable, fetch_annotation, load_annotation
from .config import WorkflowConfig
from .contrast import ContrastSummary, check_contrast_levels, classify, extract_results, summarize
from .diagnostics import run_diagnostics
from .engine import ContrastSpec, DifferentialExpressionEngine, FittedModel
from .loader import CountTable, load_count_table
from .modeling import fit_model
from .normalization import normalize, write_normalization_workbook
from .report import build_report_table, write_report

logger = logging.getLogger(__name__)


@dataclass
class WorkflowResult:
    """What a run produced.

    Attributes:
        count_table: Cleaned count table.
        annotation: Annotation used for every merge.
        design: Inferred sample design.
        model: Fitted (or reloaded) model.
        summaries: Significance counts per contrast name.
        outputs: Written files per stage or contrast name.
    """
    count_table: CountTable
    annotation: AnnotationTable
    design: pd.DataFrame
    model: FittedModel
    summaries: Dict[str, ContrastSummary] = field(default_factory=dict)
    outputs: Dict[str, Dict[str, Path]] = field(default_factory=dict)


@contextmanager
def _stage(name: str) -> Iterator[None]:
    logger.info("Stage %s: start", name)
    try:
        yield
    except Exception as err:
        logger.error("Stage %s failed: %s", name, err)
        raise
    logger.info("Stage %s: done", name)


def default_contrasts(design: pd.DataFrame, factor: str = "condition") -> List[ContrastSpec]:
    """Every level of ``factor`` against its first level."""
    levels = list(pd.unique(design[factor].astype(str)))
    return [ContrastSpec(target=lvl, reference=levels[0], factor=factor) for lvl in levels[1:]]


def _default_engine(config: WorkflowConfig) -> DifferentialExpressionEngine:
    # the R bridge is only loaded when no engine is supplied
    from .deseq2 import DESeq2Engine
    return DESeq2Engine(shrink_type=config.shrink_type)


def _get_annotation(config: WorkflowConfig) -> AnnotationTable:
    kwargs = {
        "id_column": config.annotation_id_column,
        "name_column": config.annotation_name_column,
    }
    if config.annotation_path is not None:
        return load_annotation(config.annotation_path, **kwargs)
    if config.annotation_url:
        return fetch_annotation(config.annotation_url, timeout=config.annotation_timeout, **kwargs)
    raise ValueError("Either annotation_path or annotation_url must be configured")


def run_workflow(
    config: WorkflowConfig,
    engine: Optional[DifferentialExpressionEngine] = None,
    diagnostics: bool = True,
) -> WorkflowResult:
    """
    Run the whole workflow for one configuration.

    Args:
        config: Run configuration.
        engine: Statistics engine. Defaults to DESeq2 with
            ``config.shrink_type``.
        diagnostics: Write the sample-level diagnostics.

    Returns:
        WorkflowResult with intermediate tables, the model and per-contrast
        summaries.

    Raises:
        WorkflowError: Subclass naming the failing stage.
        ValueError: On invalid configuration.
        ModelFittingError: If a contrast names a level absent from the
            design; raised before diagnostics or reports are written.
    """
    if config.counts_path is None:
        raise ValueError("counts_path must be configured")
    if engine is None:
        engine = _default_engine(config)
    out = Path(config.output_dir)
    out.mkdir(parents=True, exist_ok=True)

    with _stage("load"):
        count_table = load_count_table(
            config.counts_path,
            min_count=config.min_count,
            n_meta_columns=config.n_meta_columns,
            suffix_pattern=config.sample_suffix_pattern,
        )

    with _stage("annotation"):
        annotation = _get_annotation(config)

    outputs: Dict[str, Dict[str, Path]] = {}
    with _stage("normalize"):
        tables = normalize(count_table, annotation, strict=config.strict_annotation_join)
        outputs["normalization"] = {
            "workbook": write_normalization_workbook(tables, config.workbook_file)
        }

    with _stage("model"):
        model, design = fit_model(
            count_table,
            engine,
            model_path=config.model_file,
            reuse=config.reuse_model,
        )
        contrasts = config.contrasts or default_contrasts(design)
        for spec in contrasts:
            check_contrast_levels(model, spec)

    if diagnostics:
        with _stage("diagnostics"):
            outputs["diagnostics"] = run_diagnostics(
                model,
                count_table.counts,
                engine,
                out,
                design=design,
                n_top=config.pca_top_genes,
            )

    result = WorkflowResult(count_table, annotation, design, model, outputs=outputs)
    for spec in contrasts:
        with _stage(f"contrast {spec.name}"):
            raw, shrunken = extract_results(model, spec, engine, alpha=config.q_cutoff)
            significance = classify(raw, q_cutoff=config.q_cutoff, lfc_cutoff=config.lfc_cutoff)
            result.summaries[spec.name] = summarize(
                raw,
                significance,
                out,
                q_cutoff=config.q_cutoff,
                lfc_cutoff=config.lfc_cutoff,
                lfc_limit=config.volcano_lfc_limit,
                q_limit=config.volcano_q_limit,
            )
            table = build_report_table(
                count_table, model, annotation, spec, engine, config,
                raw=raw, shrunken=shrunken,
            )
            result.outputs[spec.name] = write_report(
                table,
                out,
                spec.name,
                q_cutoff=config.q_cutoff,
                lfc_cutoff=config.lfc_cutoff,
                name_column=annotation.name_column,
            )

    logger.info("Workflow finished: %d contrast(s) written to %s", len(contrasts), out)
    return result
