"""
Tests for reading, cleaning and filtering feature-count tables.
"""

import numpy as np
import pandas as pd
import pytest

from rnaseq_deseq2.errors import FileFormatError
from rnaseq_deseq2.loader import filter_min_count, load_count_table, strip_sample_suffix

from conftest import write_count_file


class TestSampleSuffix:
    """Test header clean-up."""

    @pytest.mark.parametrize(
        "header, expected",
        [
            ("ctrl_1.bam", "ctrl_1"),
            ("mapped/ctrl_1.sorted.bam", "ctrl_1"),
            ("/data/run/KO_batch2_3Aligned.sortedByCoord.out.bam", "KO_batch2_3"),
            ("WT-2.sorted.dedup.bam", "WT-2"),
            ("plain_name", "plain_name"),
        ],
    )
    def test_strip(self, header, expected):
        """Test directory prefix and alignment suffix are removed."""
        assert strip_sample_suffix(header) == expected


class TestFilterMinCount:
    """Test the minimum total count filter."""

    def test_boundary_is_inclusive(self):
        """Test a gene whose total equals the threshold is kept."""
        table = pd.DataFrame({"a": [5, 4, 0], "b": [5, 5, 0]}, index=["g1", "g2", "g3"])
        kept = filter_min_count(table, ["a", "b"], min_count=10)
        assert list(kept.index) == ["g1"]

    def test_totals_of_kept_rows(self):
        """Test every kept gene reaches the threshold and every dropped one does not."""
        rng = np.random.default_rng(1)
        table = pd.DataFrame(rng.integers(0, 8, size=(200, 3)), columns=["a", "b", "c"])
        kept = filter_min_count(table, ["a", "b", "c"], min_count=10)
        totals = table.sum(axis=1)
        assert (totals.loc[kept.index] >= 10).all()
        dropped = table.index.difference(kept.index)
        assert (totals.loc[dropped] < 10).all()

    def test_order_preserved(self):
        """Test filtering keeps the original row order."""
        table = pd.DataFrame({"a": [20, 0, 30, 15]}, index=["z", "y", "x", "w"])
        kept = filter_min_count(table, ["a"], min_count=10)
        assert list(kept.index) == ["z", "x", "w"]


class TestLoadCountTable:
    """Test the full loader."""

    def test_load(self, count_table, count_frame):
        """Test shape, sample names and the integer count view."""
        assert count_table.sample_names == ("ctrl_1", "ctrl_2", "treat_1", "treat_2")
        assert count_table.meta_columns == ("Chr", "Start", "End", "Length")
        assert len(count_table) == len(count_frame)
        assert count_table.counts.dtypes.unique().tolist() == [np.dtype("int64")]
        pd.testing.assert_frame_equal(
            count_table.counts, count_frame.astype(np.int64), check_names=False
        )

    def test_lengths_from_last_meta_column(self, count_table):
        """Test gene lengths come from the Length column."""
        assert count_table.lengths.iloc[0] == 500.0
        assert count_table.lengths.iloc[3] == 530.0

    def test_filters_low_genes(self, tmp_path, count_frame):
        """Test genes below the threshold are dropped."""
        counts = count_frame.copy()
        counts.iloc[5] = [1, 2, 3, 3]
        counts.iloc[6] = [0, 0, 0, 0]
        path = write_count_file(tmp_path / "c.txt", counts)
        table = load_count_table(path, min_count=10)
        assert len(table) == len(counts) - 2
        assert counts.index[5] not in table.gene_ids
        assert counts.index[6] not in table.gene_ids

    def test_too_few_columns(self, tmp_path):
        """Test a table without sample columns is rejected."""
        path = tmp_path / "short.txt"
        path.write_text("Geneid\tChr\tStart\tEnd\tLength\nG1\tchr1\t1\t10\t10\n")
        with pytest.raises(FileFormatError, match="Expected at least 6 columns"):
            load_count_table(path)

    def test_duplicate_identifier(self, tmp_path, count_frame):
        """Test a non-unique identifier column is rejected."""
        counts = count_frame.copy()
        counts.index = [counts.index[0]] + list(counts.index[1:-1]) + [counts.index[0]]
        path = write_count_file(tmp_path / "dup.txt", counts)
        with pytest.raises(FileFormatError, match="not unique"):
            load_count_table(path)

    def test_negative_counts(self, tmp_path, count_frame):
        """Test negative counts are rejected."""
        counts = count_frame.copy()
        counts.iloc[0, 0] = -1
        path = write_count_file(tmp_path / "neg.txt", counts)
        with pytest.raises(FileFormatError, match="non-negative integers"):
            load_count_table(path)

    @pytest.mark.parametrize("length", [0, -20, "n/a"])
    def test_invalid_length(self, tmp_path, count_frame, length):
        """Test a zero, negative or non-numeric gene length is rejected by the loader."""
        path = write_count_file(tmp_path / "len.txt", count_frame, comment=False)
        table = pd.read_csv(path, sep="\t")
        table["Length"] = table["Length"].astype(object)
        table.loc[3, "Length"] = length
        table.to_csv(path, sep="\t", index=False)
        with pytest.raises(FileFormatError, match="Length") as exc:
            load_count_table(path)
        assert exc.value.stage == "loader"
        assert "len.txt" in str(exc.value)
        assert count_frame.index[3] in str(exc.value)

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileFormatError naming the path."""
        with pytest.raises(FileFormatError) as exc:
            load_count_table(tmp_path / "nope.txt")
        assert exc.value.stage == "loader"
        assert "nope.txt" in str(exc.value)

    def test_to_summarized_experiment(self, count_table):
        """Test conversion to a BiocPy SummarizedExperiment."""
        from rnaseq_deseq2.design import infer_sample_design

        design = infer_sample_design(count_table.sample_names)
        se = count_table.to_summarized_experiment(design)
        assert se.shape == (len(count_table), 4)
        assert list(se.column_names) == list(count_table.sample_names)
        assert list(se.get_column_data()["condition"]) == ["ctrl", "ctrl", "treat", "treat"]
        assert np.asarray(se.assay("counts")).sum() == count_table.counts.to_numpy().sum()
