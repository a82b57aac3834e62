"""
Tests for the DESeq2 wrappers with actual R conversion using rpy2.

Skipped unless rpy2, bioc2ri and the DESeq2 R package are available.
"""

import numpy as np
import pandas as pd
import pytest

from rnaseq_deseq2.design import infer_sample_design
from rnaseq_deseq2.engine import ContrastSpec, DifferentialExpressionEngine, RESULT_COLUMNS
from rnaseq_deseq2.errors import ModelFittingError
from rnaseq_deseq2.loader import CountTable
from rnaseq_deseq2.r_utils import BIOC_PACKAGES, r_packages_available

pytest.importorskip("rpy2")
pytest.importorskip("bioc2ri")

pytestmark = pytest.mark.skipif(
    not r_packages_available(BIOC_PACKAGES),
    reason="R packages DESeq2/SummarizedExperiment/S4Vectors not available",
)


@pytest.fixture(scope="module")
def deseq2():
    import rnaseq_deseq2.deseq2 as module
    return module


@pytest.fixture
def mock_count_table():
    """CountTable with 200 genes, 3 control and 3 treated samples; 20 genes 4x up."""
    rng = np.random.default_rng(42)
    n_genes = 200
    samples = ["ctrl_1", "ctrl_2", "ctrl_3", "treat_1", "treat_2", "treat_3"]
    counts = rng.negative_binomial(10, 0.1, size=(n_genes, len(samples)))
    counts[:20, 3:] *= 4
    genes = [f"Gene_{i:03d}" for i in range(n_genes)]
    table = pd.DataFrame(counts, index=genes, columns=samples)
    table.insert(0, "Length", 1000 + np.arange(n_genes))
    return CountTable(table=table, meta_columns=("Length",), sample_names=tuple(samples))


@pytest.fixture
def mock_se(mock_count_table):
    design = infer_sample_design(mock_count_table.sample_names)
    return mock_count_table.to_summarized_experiment(design)


@pytest.fixture
def spec():
    return ContrastSpec("treat", "ctrl")


class TestDeseq:
    """Test the functional wrappers."""

    def test_fit(self, deseq2, mock_se):
        model = deseq2.deseq(mock_se, design="~ condition")
        assert model.handle is not None
        assert list(model.sample_names) == list(mock_se.column_names)
        assert list(model.feature_names) == list(mock_se.row_names)
        assert model.levels("condition") == ["ctrl", "treat"]

    def test_results(self, deseq2, mock_se, spec):
        model = deseq2.deseq(mock_se)
        res = deseq2.results(model, spec)
        assert res.variant == "raw"
        assert list(res.table.columns[:5]) == RESULT_COLUMNS
        assert "stat" in res.table.columns
        assert len(res) == 200
        assert res.table["baseMean"].notna().all()
        assert (res.table["log2FoldChange"].iloc[:20] > 1).mean() > 0.8

    def test_lfc_shrink_normal(self, deseq2, mock_se, spec):
        model = deseq2.deseq(mock_se)
        raw = deseq2.results(model, spec)
        shrunk = deseq2.lfc_shrink(model, spec, type="normal")
        assert shrunk.variant == "shrunken"
        assert (shrunk.table["log2FoldChange"].abs() <= raw.table["log2FoldChange"].abs() + 1e-8).mean() > 0.95

    def test_unknown_level(self, deseq2, mock_se):
        model = deseq2.deseq(mock_se)
        with pytest.raises(ModelFittingError):
            deseq2.results(model, ContrastSpec("mutant", "ctrl"))

    def test_vst_shape(self, deseq2, mock_se):
        model = deseq2.deseq(mock_se)
        vsd = deseq2.vst(model)
        assert vsd.shape == (200, 6)
        assert list(vsd.columns) == list(mock_se.column_names)

    def test_save_load(self, deseq2, mock_se, tmp_path):
        model = deseq2.deseq(mock_se)
        path = deseq2.save_model(model, tmp_path / "raw.dds.rds")
        loaded = deseq2.load_model(path)
        assert list(loaded.sample_names) == list(model.sample_names)
        assert list(loaded.feature_names) == list(model.feature_names)
        assert loaded.levels("condition") == ["ctrl", "treat"]
        assert "condition" in loaded.formula


class TestDESeq2Engine:
    """Test the engine implementation."""

    def test_protocol(self, deseq2):
        assert isinstance(deseq2.DESeq2Engine(), DifferentialExpressionEngine)

    def test_engine_round_trip(self, deseq2, mock_se, spec):
        engine = deseq2.DESeq2Engine()
        model = engine.fit(mock_se, "~ condition")
        assert model.metadata["nonconverged"] >= 0
        raw = engine.contrast(model, spec)
        shrunk = engine.shrink(model, spec)
        pd.testing.assert_series_equal(raw.table["pvalue"], shrunk.table["pvalue"])
