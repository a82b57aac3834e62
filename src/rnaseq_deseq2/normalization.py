"""
Length- and depth-normalized expression (TPM, FPKM) and annotation merging.
"""

from __future__ import annotations
import logging
import os
import tempfile
import warnings
from pathlib import Path
from typing import Dict, Literal, Union
import numpy as np
import pandas as pd

from .annotation import AnnotationTable
from .errors import MergeKeyMismatchError, UnmatchedKeyWarning
from .loader import CountTable

logger = logging.getLogger(__name__)

SHEETS = ("COUNT", "TPM", "FPKM")


def _check_lengths(counts: pd.DataFrame, lengths: pd.Series) -> np.ndarray:
    lengths = lengths.reindex(counts.index)
    if lengths.isna().any():
        raise ValueError("Gene lengths are missing for some genes")
    arr = lengths.to_numpy(dtype=float)
    if (arr <= 0).any():
        raise ValueError("Gene lengths must be positive")
    return arr


def compute_tpm(counts: pd.DataFrame, lengths: pd.Series) -> pd.DataFrame:
    """Transcripts per million.

    Each count is divided by the gene length in kilobases; the rates of a
    sample are then scaled to sum to one million. Samples with no reads are
    left at zero.
    """
    kb = _check_lengths(counts, lengths) / 1e3
    rate = counts.to_numpy(dtype=float) / kb[:, None]
    totals = rate.sum(axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        tpm = np.where(totals > 0, rate / totals * 1e6, 0.0)
    return pd.DataFrame(tpm, index=counts.index, columns=counts.columns)


def compute_fpkm(counts: pd.DataFrame, lengths: pd.Series) -> pd.DataFrame:
    """Fragments per kilobase of transcript per million mapped fragments."""
    bp = _check_lengths(counts, lengths)
    mat = counts.to_numpy(dtype=float)
    lib_size = mat.sum(axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        fpkm = np.where(lib_size > 0, mat * 1e9 / (bp[:, None] * lib_size), 0.0)
    return pd.DataFrame(fpkm, index=counts.index, columns=counts.columns)


def merge_annotation(
    frame: pd.DataFrame,
    annotation: AnnotationTable,
    how: Literal["left", "inner"] = "left",
    strict: bool = False,
) -> pd.DataFrame:
    """Join annotation fields onto a gene-indexed frame.

    The join key is the gene identifier (``frame.index`` against the
    annotation identifier). Rows found in the annotation come first, in
    annotation order; with ``how="left"`` the remaining rows of ``frame``
    follow in their original order with empty annotation fields.

    Args:
        frame: Table indexed by gene identifier.
        annotation: Annotation to join.
        how: ``"left"`` keeps every row of ``frame``; ``"inner"`` keeps matched rows only.
        strict: Raise instead of warning when identifiers are unmatched.

    Returns:
        DataFrame with the gene identifier as its first column, followed by
        the annotation fields and the columns of ``frame``.

    Raises:
        ValueError: If ``how`` is not supported.
        MergeKeyMismatchError: If no identifier matches, or any is unmatched
            while ``strict`` is set.
    """
    if how not in ("left", "inner"):
        raise ValueError(f"Unsupported join type '{how}'; use 'left' or 'inner'")

    annot = annotation.frame
    keys = frame.index.astype(str)
    in_annot = keys.isin(annot.index)
    n_unmatched = int((~in_annot).sum())

    if len(frame) and not in_annot.any():
        raise MergeKeyMismatchError(
            f"None of {len(frame)} gene identifiers were found in the annotation",
            source=annotation.source,
        )
    if n_unmatched:
        examples = list(keys[~in_annot][:5])
        msg = (
            f"{n_unmatched} of {len(frame)} gene identifiers have no annotation "
            f"(e.g. {examples})"
        )
        if strict:
            raise MergeKeyMismatchError(msg, source=annotation.source)
        warnings.warn(msg, UnmatchedKeyWarning, stacklevel=2)

    present = set(keys)
    ordered = [g for g in annot.index if g in present]
    if how == "left":
        ordered += list(keys[~in_annot])

    body = frame.copy()
    body.index = keys
    overlap = [c for c in annot.columns if c in body.columns]
    merged = annot.drop(columns=overlap).reindex(ordered).join(body.reindex(ordered))
    merged.index.name = annotation.id_column
    return merged.reset_index()


def normalize(
    count_table: CountTable,
    annotation: AnnotationTable,
    strict: bool = False,
) -> Dict[str, pd.DataFrame]:
    """Raw counts, TPM and FPKM, each merged with the annotation.

    Returns:
        Mapping of sheet name (``COUNT``, ``TPM``, ``FPKM``) to merged table.
    """
    counts = count_table.counts
    lengths = count_table.lengths
    matrices = {
        "COUNT": counts,
        "TPM": compute_tpm(counts, lengths),
        "FPKM": compute_fpkm(counts, lengths),
    }
    tables = {"COUNT": merge_annotation(matrices["COUNT"], annotation, how="left", strict=strict)}
    with warnings.catch_warnings():
        # same identifiers as the COUNT sheet, already reported
        warnings.simplefilter("ignore", UnmatchedKeyWarning)
        for name in ("TPM", "FPKM"):
            tables[name] = merge_annotation(matrices[name], annotation, how="left", strict=strict)
    return tables


def write_normalization_workbook(
    tables: Dict[str, pd.DataFrame],
    path: Union[str, Path],
) -> Path:
    """Write the normalized tables as sheets of one workbook.

    The workbook is written to a temporary file next to ``path`` and renamed
    into place, so an interrupted write never leaves a partial workbook.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp_", suffix=path.suffix, dir=path.parent)
    os.close(fd)
    try:
        with pd.ExcelWriter(tmp_name, engine="openpyxl") as writer:
            for sheet in SHEETS:
                if sheet in tables:
                    tables[sheet].to_excel(writer, sheet_name=sheet, index=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.info("Wrote normalization workbook %s", path)
    return path
