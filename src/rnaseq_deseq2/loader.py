"""
Load a feature-count table.

The table is tab separated. Its first ``n_meta_columns`` columns are feature
metadata (identifier, chromosome, start, end, length) and every remaining
column holds the raw counts of one sample. Lines starting with ``#`` are
comments, as written by featureCounts.
"""

from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union
import numpy as np
import pandas as pd

from .config import DEFAULT_SUFFIX_PATTERN
from .errors import FileFormatError

logger = logging.getLogger(__name__)

PATH_PREFIX_PATTERN = r"^.*/"


def strip_sample_suffix(name: str, suffix_pattern: str = DEFAULT_SUFFIX_PATTERN) -> str:
    """Reduce an alignment file name to its sample name.

    Removes any directory prefix and the trailing alignment-file suffix.

    Example:
        >>> strip_sample_suffix("mapped/ctrl_1.sorted.bam")
        'ctrl_1'
    """
    stripped = re.sub(PATH_PREFIX_PATTERN, "", str(name))
    return re.sub(suffix_pattern, "", stripped)


def filter_min_count(
    table: pd.DataFrame,
    count_columns: Sequence[str],
    min_count: int = 10,
) -> pd.DataFrame:
    """Keep rows whose total count across ``count_columns`` is >= ``min_count``.

    Row order is preserved.
    """
    totals = table[list(count_columns)].sum(axis=1)
    return table.loc[totals >= min_count]


@dataclass(frozen=True)
class CountTable:
    """A cleaned feature-count table.

    Attributes:
        table: Metadata and count columns, indexed by gene identifier.
        meta_columns: Names of the metadata columns (identifier excluded).
        sample_names: Names of the count columns.
        source: Path the table was read from.
    """
    table: pd.DataFrame
    meta_columns: tuple[str, ...]
    sample_names: tuple[str, ...]
    source: Optional[str] = None

    @property
    def counts(self) -> pd.DataFrame:
        """Raw count matrix (genes x samples) as an integer DataFrame."""
        return self.table[list(self.sample_names)].astype(np.int64)

    @property
    def lengths(self) -> pd.Series:
        """Gene lengths, read from the last metadata column."""
        return self.table[self.meta_columns[-1]].astype(float)

    @property
    def gene_ids(self) -> pd.Index:
        return self.table.index

    def __len__(self) -> int:
        return len(self.table)

    def to_summarized_experiment(self, design: Optional[pd.DataFrame] = None):
        """Wrap the counts in a BiocPy SummarizedExperiment.

        Args:
            design: Optional sample design (index = sample name) stored as
                ``column_data``.

        Returns:
            SummarizedExperiment with a ``counts`` assay and the metadata
            columns as ``row_data``.
        """
        from biocframe import BiocFrame
        from summarizedexperiment import SummarizedExperiment

        row_data = BiocFrame(
            {col: self.table[col].to_list() for col in self.meta_columns},
            row_names=list(self.gene_ids.astype(str)),
        )
        column_data = None
        if design is not None:
            design = design.loc[list(self.sample_names)]
            column_data = BiocFrame(
                {col: design[col].astype(str).to_list() for col in design.columns},
                row_names=list(self.sample_names),
            )
        return SummarizedExperiment(
            assays={"counts": self.counts.to_numpy()},
            row_data=row_data,
            column_data=column_data,
            row_names=list(self.gene_ids.astype(str)),
            column_names=list(self.sample_names),
        )


def load_count_table(
    path: Union[str, Path],
    min_count: int = 10,
    n_meta_columns: int = 5,
    suffix_pattern: str = DEFAULT_SUFFIX_PATTERN,
) -> CountTable:
    """Read, clean and filter a feature-count table.

    Args:
        path: Tab-separated count table.
        min_count: Genes with a total count below this value are dropped.
        n_meta_columns: Number of leading metadata columns, identifier included.
        suffix_pattern: Regex removed from the end of each sample header.

    Returns:
        CountTable with the filtered rows in their original order.

    Raises:
        FileFormatError: If the file cannot be read, has too few columns, a
            non-unique identifier column, duplicate sample names, or
            non-integer / negative counts, or a length that is missing,
            non-numeric or not positive.
    """
    if n_meta_columns < 2:
        raise ValueError("n_meta_columns must cover at least the identifier and length columns")
    path = Path(path)
    try:
        raw = pd.read_csv(path, sep="\t", comment="#")
    except FileNotFoundError as err:
        raise FileFormatError("Count table not found", source=str(path)) from err
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as err:
        raise FileFormatError(f"Count table could not be parsed: {err}", source=str(path)) from err

    if raw.shape[1] < n_meta_columns + 1:
        raise FileFormatError(
            f"Expected at least {n_meta_columns + 1} columns "
            f"({n_meta_columns} metadata + 1 sample), got {raw.shape[1]}",
            source=str(path),
        )

    id_col = raw.columns[0]
    if raw[id_col].isna().any():
        raise FileFormatError(f"Identifier column '{id_col}' has empty values", source=str(path))
    dupes = raw[id_col][raw[id_col].duplicated()].unique()
    if len(dupes):
        raise FileFormatError(
            f"Identifier column '{id_col}' is not unique; duplicates include {list(dupes[:5])}",
            source=str(path),
        )

    meta_columns = tuple(str(c) for c in raw.columns[1:n_meta_columns])
    samples = [strip_sample_suffix(c, suffix_pattern) for c in raw.columns[n_meta_columns:]]
    if len(set(samples)) != len(samples):
        raise FileFormatError(
            f"Sample names are not unique after suffix stripping: {samples}",
            source=str(path),
        )
    raw.columns = [str(id_col), *meta_columns, *samples]

    count_block = raw[samples]
    try:
        numeric = count_block.apply(pd.to_numeric, errors="raise")
    except (ValueError, TypeError) as err:
        raise FileFormatError(f"Count columns must be numeric: {err}", source=str(path)) from err
    values = numeric.to_numpy(dtype=float)
    if np.isnan(values).any() or (values < 0).any() or not np.all(np.mod(values, 1) == 0):
        raise FileFormatError("Counts must be non-negative integers", source=str(path))
    raw[samples] = numeric.astype(np.int64)

    length_col = meta_columns[-1]
    lengths = pd.to_numeric(raw[length_col], errors="coerce")
    bad = raw[str(id_col)][lengths.isna() | (lengths <= 0)]
    if len(bad):
        raise FileFormatError(
            f"Length column '{length_col}' must hold positive numbers; "
            f"invalid for {list(bad[:5])}",
            source=str(path),
        )
    raw[length_col] = lengths

    table = raw.set_index(str(id_col))
    table.index = table.index.astype(str)
    n_before = len(table)
    table = filter_min_count(table, samples, min_count)
    logger.info(
        "Loaded %d genes x %d samples from %s; %d genes kept with total count >= %d",
        n_before, len(samples), path, len(table), min_count,
    )
    return CountTable(
        table=table,
        meta_columns=meta_columns,
        sample_names=tuple(samples),
        source=str(path),
    )
