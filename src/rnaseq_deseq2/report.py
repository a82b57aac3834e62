"""
Per-contrast report tables and output files.

One merged row-per-gene table per contrast holds TPM, the shrunken and
unshrunken statistics and the annotation. It is written as a rank file,
a CSV, a workbook and a workbook restricted to significant genes.
"""

from __future__ import annotations
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Union
import pandas as pd

from .annotation import AnnotationTable
from .config import WorkflowConfig
from .contrast import classify, extract_results
from .engine import ContrastResult, ContrastSpec, DifferentialExpressionEngine, FittedModel
from .loader import CountTable
from .normalization import compute_tpm, merge_annotation

logger = logging.getLogger(__name__)

ID_COLUMN = "gene_id"
RANK_COLUMN = "log2FoldChange_shrinked"
SHRUNKEN_COLUMNS = {
    "baseMean": "baseMean",
    "log2FoldChange": RANK_COLUMN,
    "lfcSE": "lfcSE_shrinked",
    "pvalue": "pvalue",
    "padj": "padj",
}
RAW_COLUMNS = ["log2FoldChange", "lfcSE", "stat"]


def build_report_table(
    count_table: CountTable,
    model: FittedModel,
    annotation: AnnotationTable,
    spec: ContrastSpec,
    engine: DifferentialExpressionEngine,
    config: WorkflowConfig,
    raw: Optional[ContrastResult] = None,
    shrunken: Optional[ContrastResult] = None,
) -> pd.DataFrame:
    """
    Merge expression, statistics and annotation of one contrast.

    Args:
        count_table: Cleaned count table.
        model: Fitted model.
        annotation: Gene annotation.
        spec: Contrast to report.
        engine: Engine that fitted ``model``.
        config: Run configuration (thresholds, join strictness).
        raw: Unshrunken results; extracted from the engine when None.
        shrunken: Shrunken results; extracted from the engine when None.

    Returns:
        DataFrame with one row per gene: ``gene_id``, the annotation fields,
        ``TPM.<sample>`` columns, then ``baseMean``,
        ``log2FoldChange_shrinked``, ``lfcSE_shrinked``, ``pvalue``,
        ``padj``, ``log2FoldChange``, ``lfcSE`` and ``stat``. Annotated
        genes come first, in annotation order.
    """
    if raw is None or shrunken is None:
        raw, shrunken = extract_results(model, spec, engine, alpha=config.q_cutoff)

    tpm = compute_tpm(count_table.counts, count_table.lengths)
    tpm.columns = [f"TPM.{s}" for s in tpm.columns]
    tpm.index = tpm.index.astype(str)

    shrunk = shrunken.table[list(SHRUNKEN_COLUMNS)].rename(columns=SHRUNKEN_COLUMNS)
    unshrunk = raw.table.reindex(columns=RAW_COLUMNS)

    stats = tpm.join(shrunk, how="left").join(unshrunk, how="left")
    table = merge_annotation(stats, annotation, how="left", strict=config.strict_annotation_join)
    return table.rename(columns={annotation.id_column: ID_COLUMN})


def write_rank_file(
    table: pd.DataFrame,
    path: Union[str, Path],
    name_column: Optional[str] = None,
) -> Path:
    """Write a two-column rank file for enrichment tools.

    Rows are sorted ascending by ``log2FoldChange_shrinked`` with missing
    fold changes last. The display name falls back to the gene identifier
    where the annotation has none.
    """
    names = table[ID_COLUMN].astype(str)
    if name_column is not None and name_column in table.columns:
        display = table[name_column]
        names = display.where(display.notna() & (display.astype(str) != ""), names).astype(str)
    ranks = pd.DataFrame({"# Name": names.to_numpy(), RANK_COLUMN: table[RANK_COLUMN].to_numpy()})
    ranks = ranks.sort_values(RANK_COLUMN, ascending=True, na_position="last", kind="mergesort")
    ranks.to_csv(path, sep="\t", index=False, na_rep="NA")
    return Path(path)


def significant_subset(table: pd.DataFrame, q_cutoff: float = 0.05, lfc_cutoff: float = 1.0) -> pd.DataFrame:
    """Rows passing both thresholds on the unshrunken fold change."""
    return table[classify(table, q_cutoff=q_cutoff, lfc_cutoff=lfc_cutoff).significant.to_numpy()]


def report_filenames(name: str, q_cutoff: float, lfc_cutoff: float) -> Dict[str, str]:
    return {
        "rank": f"{name}.rnk",
        "csv": f"{name}.deseq2.csv",
        "xlsx": f"{name}.deseq2.xlsx",
        "significant": f"{name}.deseq2.sig.FDR.{q_cutoff:g}.LFC.{lfc_cutoff:g}.xlsx",
    }


@contextmanager
def staged_output(output_dir: Union[str, Path]) -> Iterator[Path]:
    """Stage files in a scratch directory inside ``output_dir``.

    Files written to the yielded directory are moved into ``output_dir``
    when the block exits normally, in name order. On error nothing is moved;
    if a move itself fails, the files already moved are removed again. The
    scratch directory is removed in every case.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".staging_", dir=output_dir))
    try:
        yield staging
        moved = []
        try:
            for staged in sorted(staging.iterdir()):
                target = output_dir / staged.name
                os.replace(staged, target)
                moved.append(target)
        except OSError:
            logger.error("Moving staged files into %s failed; removing %d moved file(s)",
                         output_dir, len(moved))
            for target in moved:
                target.unlink(missing_ok=True)
            raise
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def write_report(
    table: pd.DataFrame,
    output_dir: Union[str, Path],
    name: str,
    q_cutoff: float = 0.05,
    lfc_cutoff: float = 1.0,
    name_column: Optional[str] = None,
) -> Dict[str, Path]:
    """
    Write the report files of one contrast.

    Produces ``<name>.rnk``, ``<name>.deseq2.csv``, ``<name>.deseq2.xlsx``
    and ``<name>.deseq2.sig.FDR.<q>.LFC.<l>.xlsx``. Either all four files
    appear in ``output_dir`` or none does.

    Returns:
        Mapping of report kind to the written file.
    """
    output_dir = Path(output_dir)
    filenames = report_filenames(name, q_cutoff, lfc_cutoff)
    significant = significant_subset(table, q_cutoff=q_cutoff, lfc_cutoff=lfc_cutoff)

    with staged_output(output_dir) as staging:
        write_rank_file(table, staging / filenames["rank"], name_column=name_column)
        table.to_csv(staging / filenames["csv"], index=False)
        with pd.ExcelWriter(staging / filenames["xlsx"], engine="openpyxl") as writer:
            table.to_excel(writer, sheet_name=name[:31], index=False)
        with pd.ExcelWriter(staging / filenames["significant"], engine="openpyxl") as writer:
            significant.to_excel(writer, sheet_name=name[:31], index=False)

    logger.info(
        "Wrote report for %s: %d genes, %d significant", name, len(table), len(significant)
    )
    return {kind: output_dir / fname for kind, fname in filenames.items()}
