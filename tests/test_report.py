"""
Tests for the merged report table and report files.
"""

import numpy as np
import pandas as pd
import pytest

from rnaseq_deseq2.annotation import parse_annotation
from rnaseq_deseq2.config import WorkflowConfig
from rnaseq_deseq2.engine import ContrastSpec
from rnaseq_deseq2.errors import UnmatchedKeyWarning
from rnaseq_deseq2.modeling import fit_model
from rnaseq_deseq2 import report
from rnaseq_deseq2.report import build_report_table, write_rank_file, write_report

from conftest import write_annotation_file


@pytest.fixture
def spec():
    return ContrastSpec("treat", "ctrl")


@pytest.fixture
def config(tmp_path):
    return WorkflowConfig(output_dir=tmp_path)


@pytest.fixture
def report_table(count_table, annotation, engine, spec, config):
    model, _ = fit_model(count_table, engine)
    return build_report_table(count_table, model, annotation, spec, engine, config)


class TestBuildReportTable:
    """Test the merged row-per-gene table."""

    def test_columns(self, report_table, count_table):
        """Test identifier, annotation, TPM, shrunken and raw columns in order."""
        cols = list(report_table.columns)
        assert cols[:3] == ["gene_id", "gene_name", "biotype"]
        assert cols[3:7] == [f"TPM.{s}" for s in count_table.sample_names]
        assert cols[7:] == [
            "baseMean", "log2FoldChange_shrinked", "lfcSE_shrinked", "pvalue", "padj",
            "log2FoldChange", "lfcSE", "stat",
        ]

    def test_one_row_per_gene(self, report_table, count_table, annotation):
        """Test every gene appears once, in annotation order."""
        assert len(report_table) == len(count_table)
        assert report_table["gene_id"].is_unique
        assert list(report_table["gene_id"]) == list(annotation.gene_ids)

    def test_shrunken_differs_from_raw(self, report_table):
        """Test the two fold-change variants are both present."""
        np.testing.assert_allclose(
            report_table["log2FoldChange_shrinked"], report_table["log2FoldChange"] * 0.5
        )

    def test_partial_annotation(self, tmp_path, count_table, engine, spec, config):
        """Test unannotated genes are kept after the annotated ones."""
        annot = parse_annotation(
            write_annotation_file(tmp_path / "a.txt", list(count_table.gene_ids)[:30])
        )
        model, _ = fit_model(count_table, engine)
        with pytest.warns(UnmatchedKeyWarning):
            table = build_report_table(count_table, model, annot, spec, engine, config)
        assert len(table) == len(count_table)
        assert table["gene_name"].iloc[30:].isna().all()
        assert list(table["gene_id"].iloc[30:]) == list(count_table.gene_ids)[30:]


class TestRankFile:
    """Test the enrichment rank file."""

    def test_sorted_one_row_per_gene(self, tmp_path, report_table):
        """Test ascending order, header and cardinality."""
        path = write_rank_file(report_table, tmp_path / "x.rnk", name_column="gene_name")
        lines = path.read_text().splitlines()
        assert lines[0] == "# Name\tlog2FoldChange_shrinked"
        values = [float(line.split("\t")[1]) for line in lines[1:]]
        assert len(values) == len(report_table)
        assert values == sorted(values)
        assert lines[1].split("\t")[0].startswith("SYM")

    def test_name_fallback_and_missing_last(self, tmp_path):
        """Test missing names fall back to the identifier and NA sorts last."""
        table = pd.DataFrame(
            {
                "gene_id": ["g1", "g2", "g3"],
                "gene_name": ["A", np.nan, "C"],
                "log2FoldChange_shrinked": [0.5, -1.5, np.nan],
            }
        )
        path = write_rank_file(table, tmp_path / "x.rnk", name_column="gene_name")
        assert path.read_text().splitlines()[1:] == ["g2\t-1.5", "A\t0.5", "C\tNA"]


class TestWriteReport:
    """Test report files and their names."""

    def test_files(self, tmp_path, report_table):
        """Test the four files are written with threshold-bearing names."""
        out = tmp_path / "out"
        paths = write_report(report_table, out, "treat_vs_ctrl", q_cutoff=0.05, lfc_cutoff=1.0,
                             name_column="gene_name")
        assert sorted(p.name for p in out.iterdir()) == sorted([
            "treat_vs_ctrl.rnk",
            "treat_vs_ctrl.deseq2.csv",
            "treat_vs_ctrl.deseq2.xlsx",
            "treat_vs_ctrl.deseq2.sig.FDR.0.05.LFC.1.xlsx",
        ])
        full = pd.read_csv(paths["csv"])
        assert len(full) == len(report_table)
        sig = pd.read_excel(paths["significant"], engine="openpyxl")
        assert (sig["padj"] < 0.05).all()
        assert (sig["log2FoldChange"].abs() > 1.0).all()

    def test_different_thresholds_do_not_collide(self, tmp_path, report_table):
        write_report(report_table, tmp_path, "c", q_cutoff=0.05, lfc_cutoff=1.0)
        write_report(report_table, tmp_path, "c", q_cutoff=0.01, lfc_cutoff=2.0)
        names = {p.name for p in tmp_path.iterdir()}
        assert "c.deseq2.sig.FDR.0.05.LFC.1.xlsx" in names
        assert "c.deseq2.sig.FDR.0.01.LFC.2.xlsx" in names

    def test_failure_leaves_nothing(self, tmp_path, report_table, monkeypatch):
        """Test a failing writer leaves no partial report behind."""
        def broken(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(report.pd, "ExcelWriter", broken)
        out = tmp_path / "out"
        with pytest.raises(OSError):
            write_report(report_table, out, "c")
        assert list(out.iterdir()) == []

    def test_failed_move_rolls_back(self, tmp_path, report_table, monkeypatch):
        """Test a move failing midway removes the report files already moved."""
        real_replace = report.os.replace
        calls = []

        def replace_then_fail(src, dst):
            calls.append(dst)
            if len(calls) == 3:
                raise OSError("disk full")
            real_replace(src, dst)

        monkeypatch.setattr(report.os, "replace", replace_then_fail)
        out = tmp_path / "out"
        with pytest.raises(OSError, match="disk full"):
            write_report(report_table, out, "c")
        assert len(calls) == 3
        assert list(out.iterdir()) == []
