"""Unit tests for I/O utilities."""

import json
import logging

import numpy as np
import pandas as pd
import pytest
import yaml

from stagewise.io import (
    ensure_output_dir,
    infer_delimiter,
    log_json,
    log_yaml,
    read_cell_labels,
    read_expression_matrix,
    setup_logging,
    write_dataframe,
)
from tests.fixtures import write_expression_table


class TestLogging:
    """Tests for logger setup and structured records."""

    def test_setup_logging_levels(self):
        """Test that an explicit level overrides verbose."""
        logger = setup_logging(verbose=True, name="stagewise.test.setup")
        assert logger.level == logging.DEBUG
        logger = setup_logging(verbose=True, name="stagewise.test.setup", level=logging.WARNING)
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1
        logger.handlers.clear()

    def test_setup_logging_file(self, tmp_path):
        """Test the optional log file."""
        logger = setup_logging(log_dir=tmp_path / "logs", name="stagewise.test.file")
        logger.info("clustered %d cells", 90)
        for handler in logger.handlers:
            handler.flush()
        text = (tmp_path / "logs" / "stagewise.log").read_text()
        assert "clustered 90 cells" in text
        assert "| INFO |" in text
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    def test_log_json_appends_lines(self, tmp_path):
        """Test JSON lines with non-serialisable values."""
        path = tmp_path / "records.jsonl"
        log_json(path, {"step": "cluster", "path": tmp_path})
        log_json(path, {"step": "markers", "n": 3})
        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["path"] == str(tmp_path)
        assert json.loads(lines[1])["n"] == 3

    def test_log_yaml_to_file(self, tmp_path):
        """Test YAML documents separated by ---."""
        path = tmp_path / "run.yaml"
        log_yaml(path, {"k": 3})
        log_yaml(path, {"k": 4})
        docs = [d for d in yaml.safe_load_all(path.read_text()) if d is not None]
        assert docs == [{"k": 3}, {"k": 4}]

    def test_log_yaml_to_logger(self, tmp_path, caplog):
        """Test that a logger receives the document instead of the file."""
        logger = logging.getLogger("stagewise.test.yaml")
        path = tmp_path / "unused.yaml"
        with caplog.at_level(logging.INFO, logger="stagewise.test.yaml"):
            log_yaml(path, {"best_k": 3}, logger=logger)
        assert "best_k: 3" in caplog.text
        assert not path.exists()


class TestTables:
    """Tests for matrix and label readers."""

    def test_ensure_output_dir(self, tmp_path):
        """Test nested directory creation."""
        out = ensure_output_dir(tmp_path / "a" / "b")
        assert out.is_dir()

    @pytest.mark.parametrize(
        "name, expected",
        [("m.csv", ","), ("m.tsv", "\t"), ("m.txt", "\t"), ("m.tsv.gz", "\t"), ("m.h5ad", None)],
    )
    def test_infer_delimiter(self, name, expected):
        """Test delimiter inference from suffixes."""
        assert infer_delimiter(name) == expected

    def test_infer_delimiter_unknown(self):
        """Test that unsupported formats raise."""
        with pytest.raises(ValueError, match="Unsupported"):
            infer_delimiter("matrix.rds")

    def test_read_genes_x_cells(self, tmp_path, mock_adata):
        """Test that text matrices are transposed to cells x genes."""
        path = write_expression_table(mock_adata, tmp_path / "m.tsv")
        adata = read_expression_matrix(path)
        assert adata.shape == mock_adata.shape
        assert list(adata.obs_names) == list(mock_adata.obs_names)
        assert list(adata.var_names) == list(mock_adata.var_names)
        np.testing.assert_allclose(adata.X, mock_adata.X, rtol=1e-5)

    def test_read_cells_x_genes_gzipped(self, tmp_path, mock_adata):
        """Test the cells x genes orientation on a gzipped CSV."""
        path = write_expression_table(
            mock_adata, tmp_path / "m.csv.gz", orientation="cells_x_genes"
        )
        adata = read_expression_matrix(path, orientation="cells_x_genes")
        assert adata.shape == mock_adata.shape

    def test_read_h5ad(self, tmp_path, mock_adata):
        """Test h5ad input."""
        path = tmp_path / "m.h5ad"
        mock_adata.write_h5ad(path)
        adata = read_expression_matrix(path)
        assert adata.shape == mock_adata.shape

    def test_duplicate_genes_made_unique(self, tmp_path):
        """Test that duplicated gene names are made unique."""
        path = tmp_path / "dup.csv"
        pd.DataFrame(
            [[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]],
            index=["Actb", "Actb", "Gapdh"],
            columns=["E9.5_b1_c1", "E9.5_b1_c2"],
        ).to_csv(path)
        adata = read_expression_matrix(path)
        assert adata.var_names.is_unique
        assert adata.n_vars == 3

    def test_missing_file(self, tmp_path):
        """Test missing input."""
        with pytest.raises(FileNotFoundError):
            read_expression_matrix(tmp_path / "none.tsv")

    def test_bad_orientation(self, tmp_path, mock_adata):
        """Test unknown orientation."""
        path = write_expression_table(mock_adata, tmp_path / "m.tsv")
        with pytest.raises(ValueError, match="orientation"):
            read_expression_matrix(path, orientation="sideways")

    def test_read_cell_labels(self, labels_csv, cell_labels):
        """Test labels keyed by cell id."""
        labels = read_cell_labels(labels_csv)
        assert len(labels) == len(cell_labels)
        assert labels.loc[cell_labels.index[0]] == cell_labels.iloc[0]

    def test_read_cell_labels_missing_column(self, tmp_path):
        """Test that a missing label column raises."""
        path = tmp_path / "labels.csv"
        pd.DataFrame({"cell_id": ["a"], "type": ["x"]}).to_csv(path, index=False)
        with pytest.raises(ValueError, match="missing columns"):
            read_cell_labels(path)

    def test_read_cell_labels_duplicates_keep_first(self, tmp_path):
        """Test duplicated ids keep the first label."""
        path = tmp_path / "labels.tsv"
        pd.DataFrame(
            {"cell_id": ["a", "a", "b"], "cell_type": ["x", "y", "z"]}
        ).to_csv(path, sep="\t", index=False)
        labels = read_cell_labels(path)
        assert labels.to_dict() == {"a": "x", "b": "z"}

    def test_write_dataframe(self, tmp_path):
        """Test CSV writer creates parent directories."""
        path = write_dataframe(pd.DataFrame({"a": [1, 2]}), tmp_path / "x" / "t.csv")
        assert path.exists()
        assert pd.read_csv(path)["a"].tolist() == [1, 2]
