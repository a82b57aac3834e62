"""
Infer the sample design from sample names.

Grammar of a sample name::

    name      := <condition> [sep] [batch-token] [sep] [replicate]
    batch     := "batch" digits       (case-insensitive, anywhere in the name)
    replicate := digits               (at the very end)
    sep       := "_" | "." | "-"

The first batch token becomes the batch label, lower-cased. A name without a
batch token belongs to the single implicit batch ``DEFAULT_BATCH``. The
condition is what remains after removing the batch token (with one preceding
separator) and the trailing replicate number (with one optional preceding
separator); separators left dangling at either end are trimmed.

Example:
    >>> parse_sample_name("KO_Batch2_3")
    SampleLabels(condition='KO', batch='batch2')
    >>> parse_sample_name("ctrl_1")
    SampleLabels(condition='ctrl', batch='batch1')
"""

from __future__ import annotations
import re
from typing import NamedTuple, Sequence
import pandas as pd

DEFAULT_BATCH = "batch1"

BATCH_PATTERN = re.compile(r"[_.\-]?(batch\d+)", re.IGNORECASE)
REPLICATE_PATTERN = re.compile(r"[_.\-]?\d+$")
SEPARATORS = "_.-"


class SampleLabels(NamedTuple):
    """Labels inferred from one sample name."""
    condition: str
    batch: str


def parse_sample_name(name: str) -> SampleLabels:
    """Infer ``(condition, batch)`` from a sample name.

    Falls back to the full name as condition when stripping would leave
    nothing (e.g. a purely numeric name).
    """
    name = str(name)
    match = BATCH_PATTERN.search(name)
    if match:
        batch = match.group(1).lower()
        remainder = name[:match.start()] + name[match.end():]
    else:
        batch = DEFAULT_BATCH
        remainder = name
    condition = REPLICATE_PATTERN.sub("", remainder).strip(SEPARATORS)
    if not condition:
        condition = remainder.strip(SEPARATORS) or name
    return SampleLabels(condition=condition, batch=batch)


def infer_sample_design(sample_names: Sequence[str]) -> pd.DataFrame:
    """Build the sample design table.

    Returns:
        DataFrame indexed by sample name (in input order) with columns
        ``condition`` and ``batch``; both are categoricals whose levels are
        ordered by first appearance.

    Raises:
        ValueError: If sample names are duplicated.
    """
    names = [str(n) for n in sample_names]
    if len(set(names)) != len(names):
        raise ValueError(f"Sample names must be unique, got {names}")
    labels = [parse_sample_name(n) for n in names]
    design = pd.DataFrame(
        {
            "condition": [lab.condition for lab in labels],
            "batch": [lab.batch for lab in labels],
        },
        index=pd.Index(names, name="sample"),
    )
    for col in ("condition", "batch"):
        design[col] = pd.Categorical(design[col], categories=list(pd.unique(design[col])))
    return design


def design_formula(design: pd.DataFrame) -> str:
    """Design formula of the fitted model.

    Condition is the sole explanatory factor; batch labels are inferred and
    reported but not modeled.
    """
    if "condition" not in design.columns:
        raise KeyError("Design lacks a 'condition' column")
    return "~ condition"
