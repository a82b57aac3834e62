"""
Shared fixtures for the workflow tests.

Pure-Python stages run against ``FakeEngine``, a small deterministic engine
implementing the engine interface with numpy/scipy, so that only the
DESeq2-backed tests need R.
"""

import warnings

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from rnaseq_deseq2.annotation import parse_annotation
from rnaseq_deseq2.engine import ContrastResult, FittedModel, standardize_result_table
from rnaseq_deseq2.loader import load_count_table


def benjamini_hochberg(pvalues: np.ndarray) -> np.ndarray:
    """BH adjustment; missing p-values stay missing."""
    out = np.full(len(pvalues), np.nan)
    mask = ~np.isnan(pvalues)
    if mask.any():
        out[mask] = stats.false_discovery_control(pvalues[mask], method="bh")
    return out


class FakeEngine:
    """Deterministic stand-in for the DESeq2 engine.

    Median-of-ratios normalization, log2 ratio of group means, Welch t-test on
    log2 normalized counts and BH adjustment. Shrinkage scales fold changes
    by ``shrink_factor``.
    """

    name = "fake"

    def __init__(self, shrink_factor: float = 0.5):
        self.shrink_factor = shrink_factor
        self.fit_calls = 0

    def fit(self, counts, design):
        self.fit_calls += 1
        coldata = counts.get_column_data()
        samples = [str(s) for s in counts.column_names]
        genes = [str(g) for g in counts.row_names]
        sample_design = pd.DataFrame(
            {col: [str(v) for v in coldata[col]] for col in coldata.column_names},
            index=pd.Index(samples, name="sample"),
        )
        matrix = pd.DataFrame(np.asarray(counts.assay("counts"), dtype=float), index=genes, columns=samples)
        return FittedModel(
            handle={"counts": matrix},
            sample_names=samples,
            feature_names=genes,
            design=sample_design,
            formula=design,
            metadata={"engine": self.name},
        )

    def _normalized(self, model):
        # median-of-ratios size factors over genes without zeros
        counts = model.handle["counts"]
        positive = counts[(counts > 0).all(axis=1)]
        log_counts = np.log(positive)
        ratios = log_counts.sub(log_counts.mean(axis=1), axis=0)
        size_factors = np.exp(ratios.median(axis=0))
        return counts / size_factors

    def contrast(self, model, spec, alpha=0.05):
        norm = self._normalized(model)
        factor = model.design[spec.factor]
        target = norm.loc[:, (factor == spec.target).to_numpy()]
        reference = norm.loc[:, (factor == spec.reference).to_numpy()]
        log_t = np.log2(target + 1)
        log_r = np.log2(reference + 1)
        with warnings.catch_warnings(), np.errstate(all="ignore"):
            warnings.simplefilter("ignore")
            stat, pvalue = stats.ttest_ind(log_t, log_r, axis=1, equal_var=False)
            se = np.sqrt(log_t.var(axis=1, ddof=1) / log_t.shape[1]
                         + log_r.var(axis=1, ddof=1) / log_r.shape[1])
        lfc = np.log2((target.mean(axis=1) + 0.5) / (reference.mean(axis=1) + 0.5))
        pvalue = np.asarray(pvalue, dtype=float)
        table = pd.DataFrame(
            {
                "baseMean": norm.mean(axis=1),
                "log2FoldChange": lfc,
                "lfcSE": se,
                "stat": np.asarray(stat, dtype=float),
                "pvalue": pvalue,
                "padj": benjamini_hochberg(pvalue),
            },
            index=norm.index,
        )
        return ContrastResult(table=standardize_result_table(table), spec=spec, variant="raw")

    def shrink(self, model, spec, alpha=0.05):
        raw = self.contrast(model, spec, alpha=alpha).table
        table = raw.drop(columns=["stat"])
        table["log2FoldChange"] = raw["log2FoldChange"] * self.shrink_factor
        table["lfcSE"] = raw["lfcSE"] * self.shrink_factor
        return ContrastResult(table=standardize_result_table(table), spec=spec, variant="shrunken")

    def transform(self, model):
        return np.log2(self._normalized(model) + 1)

    def save(self, model, path):
        pd.to_pickle(model, path)

    def load(self, path):
        return pd.read_pickle(path)


def make_count_frame(n_genes=40, seed=0, samples=("ctrl_1", "ctrl_2", "treat_1", "treat_2")):
    """Gene x sample counts where the first ten genes are 8x up in 'treat'."""
    rng = np.random.default_rng(seed)
    genes = [f"ENSG{i:05d}" for i in range(n_genes)]
    base = rng.integers(50, 500, size=n_genes)
    data = {}
    for s in samples:
        lam = base * (8 if s.startswith("treat") else 1)
        lam = np.where(np.arange(n_genes) < 10, lam, base)
        data[s] = rng.poisson(lam)
    return pd.DataFrame(data, index=genes)


def write_count_file(path, counts, header_suffix=".sorted.bam", comment=True):
    """Write a featureCounts-style table (Geneid, Chr, Start, End, Length, samples)."""
    meta = pd.DataFrame(
        {
            "Geneid": counts.index,
            "Chr": "chr1",
            "Start": np.arange(len(counts)) * 1000 + 1,
            "End": np.arange(len(counts)) * 1000 + 900,
            "Length": np.arange(len(counts)) * 10 + 500,
        }
    )
    body = counts.reset_index(drop=True)
    body.columns = [f"aligned/{s}{header_suffix}" for s in counts.columns]
    table = pd.concat([meta, body], axis=1)
    with open(path, "w") as fh:
        if comment:
            fh.write("# Program:featureCounts v2.0.1; Command:\"featureCounts\"\n")
        table.to_csv(fh, sep="\t", index=False)
    return path


def write_annotation_file(path, gene_ids, sep="\t"):
    """Annotation with gene_id, gene_name and biotype; written in reverse gene order."""
    ids = list(reversed(list(gene_ids)))
    frame = pd.DataFrame(
        {
            "gene_id": ids,
            "gene_name": [f"SYM{g[-3:]}" for g in ids],
            "biotype": "protein_coding",
        }
    )
    frame.to_csv(path, sep=sep, index=False)
    return path


@pytest.fixture
def count_frame():
    """Raw counts for 40 genes and 4 samples (2 conditions x 2 replicates)."""
    return make_count_frame()


@pytest.fixture
def count_file(tmp_path, count_frame):
    """featureCounts-style file for ``count_frame``."""
    return write_count_file(tmp_path / "counts.txt", count_frame)


@pytest.fixture
def count_table(count_file):
    """Loaded CountTable (no gene filtered at min_count=10)."""
    return load_count_table(count_file, min_count=10)


@pytest.fixture
def annotation_file(tmp_path, count_frame):
    return write_annotation_file(tmp_path / "annotation.txt", count_frame.index)


@pytest.fixture
def annotation(annotation_file):
    """AnnotationTable covering every gene of ``count_frame``."""
    return parse_annotation(annotation_file)


@pytest.fixture
def engine():
    return FakeEngine()
