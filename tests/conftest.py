"""Pytest configuration and shared fixtures for stagewise tests."""

import logging
import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pytest
import pandas as pd

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Import mock data generators
from tests.fixtures import (
    MOCK_ID_PATTERN,
    create_cell_labels,
    create_clustered_adata,
    create_mock_adata,
    write_expression_table,
)


# ============================================================================
# Logging
# ============================================================================


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handler/propagation changes made by CLI and workflow runs."""
    yield
    logger = logging.getLogger("stagewise")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# ============================================================================
# AnnData Fixtures
# ============================================================================


@pytest.fixture
def mock_adata():
    """Unannotated mock dataset: 90 cells, 40 genes, 3 planted clusters."""
    return create_mock_adata()


@pytest.fixture
def annotated_adata():
    """Mock dataset with stage, batch and truth columns."""
    return create_mock_adata(annotate=True)


@pytest.fixture
def counts_adata():
    """Mock dataset holding integer counts."""
    return create_mock_adata(counts=True)


@pytest.fixture
def clustered_adata():
    """Annotated mock dataset with clusters, PCA and a 2-D embedding."""
    return create_clustered_adata()


@pytest.fixture
def cell_labels(mock_adata) -> pd.Series:
    """Ground-truth labels for ``mock_adata`` (last 5 cells unlabelled)."""
    return create_cell_labels(mock_adata, drop=5)


# ============================================================================
# File Fixtures
# ============================================================================


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def expression_tsv(tmp_path, mock_adata) -> Path:
    """``mock_adata`` written as a genes x cells TSV."""
    return write_expression_table(mock_adata, tmp_path / "merged.tsv")


@pytest.fixture
def labels_csv(tmp_path, cell_labels) -> Path:
    """Ground-truth label table for ``mock_adata``."""
    path = tmp_path / "labels.csv"
    cell_labels.rename_axis("cell_id").reset_index().to_csv(path, index=False)
    return path


@pytest.fixture
def workflow_yaml(tmp_path, expression_tsv, labels_csv) -> Path:
    """Workflow configuration running on the mock files."""
    import yaml

    config = {
        "workflow": {
            "output_dir": str(tmp_path / "run"),
            "seed": 7,
            "input": {"path": str(expression_tsv)},
            "metadata": {
                "id_pattern": MOCK_ID_PATTERN,
                "labels_path": str(labels_csv),
            },
            "clustering": {"n_clusters": 3, "n_pcs": 10, "kernel_neighbors": [5, 10]},
            "selection": {"k_min": 2, "k_max": 4},
            "markers": {"n_genes": 20, "n_top": 5},
            "embedding": {"perplexity": 10.0},
            "plots": {"dpi": 50, "interactive": False},
            "composition": {"dpi": 50},
        }
    }

    path = tmp_path / "workflow.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)

    return path
