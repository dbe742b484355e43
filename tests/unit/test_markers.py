"""Unit tests for marker gene detection."""

import numpy as np
import pandas as pd
import pytest

from stagewise.core.clustering import (
    MARKER_COLUMNS,
    MarkerConfig,
    MarkerFinder,
    marker_overlap,
    top_markers,
)


class TestMarkerConfig:
    """Tests for MarkerConfig dataclass."""

    def test_default_values(self):
        """Test default thresholds."""
        config = MarkerConfig()
        assert config.method == "wilcoxon"
        assert config.n_genes == 100
        assert config.min_logfc == 0.25
        assert config.max_pval_adj == 0.05


class TestMarkerFinder:
    """Tests for MarkerFinder."""

    def test_planted_markers_found(self, clustered_adata):
        """Test that each cluster's planted genes rank first."""
        result = MarkerFinder(MarkerConfig(n_top=5)).find_markers(clustered_adata)

        assert list(result.table.columns) == MARKER_COLUMNS
        assert list(result.top_markers) == ["1", "2", "3"]
        for c, genes in result.top_markers.items():
            planted = {f"Gene_{j}" for j in range(5 * (int(c) - 1), 5 * int(c))}
            assert set(genes) == planted
        assert result.key_added == "markers_wilcoxon"
        assert result.key_added in clustered_adata.uns

    def test_thresholds_applied(self, clustered_adata):
        """Test that filtered rows satisfy every threshold."""
        config = MarkerConfig(min_logfc=1.0, min_pct=0.5, max_pval_adj=0.01)
        table = MarkerFinder(config).find_markers(clustered_adata).table
        assert (table["logfoldchange"] >= 1.0).all()
        assert (table["pct_in"] >= 0.5).all()
        assert (table["pval_adj"] <= 0.01).all()

    def test_ranks_restart_per_cluster(self, clustered_adata):
        """Test ranks are 1..n within each cluster."""
        table = MarkerFinder().find_markers(clustered_adata).table
        for _, group in table.groupby("cluster", observed=True):
            assert group["rank"].tolist() == list(range(1, len(group) + 1))

    def test_singleton_cluster_excluded(self, clustered_adata):
        """Test clusters with one cell are skipped with a warning."""
        clustered_adata.obs["cluster"] = clustered_adata.obs["cluster"].cat.add_categories("4")
        clustered_adata.obs.iloc[0, clustered_adata.obs.columns.get_loc("cluster")] = "4"
        result = MarkerFinder().find_markers(clustered_adata)
        assert "4" not in result.top_markers
        assert "4" not in set(result.table["cluster"].astype(str))

    def test_too_few_clusters(self, clustered_adata):
        """Test a single cluster raises."""
        clustered_adata.obs["one"] = "1"
        with pytest.raises(ValueError, match="at least two clusters"):
            MarkerFinder().find_markers(clustered_adata, cluster_key="one")

    def test_missing_cluster_key(self, clustered_adata):
        """Test missing cluster column."""
        with pytest.raises(KeyError):
            MarkerFinder().find_markers(clustered_adata, cluster_key="nope")

    def test_missing_layer_falls_back(self, clustered_adata):
        """Test that an unknown layer falls back to X."""
        result = MarkerFinder(MarkerConfig(layer="absent")).find_markers(clustered_adata)
        assert len(result.table) > 0


class TestMarkerHelpers:
    """Tests for top_markers and marker_overlap."""

    def test_top_markers_by_score(self):
        """Test top genes per cluster ordered by score."""
        table = pd.DataFrame({
            "cluster": ["2", "2", "2", "1"],
            "gene": ["a", "b", "c", "d"],
            "score": [1.0, 3.0, 2.0, 5.0],
        })
        assert top_markers(table, 2) == {"2": ["b", "c"], "1": ["d"]}

    def test_marker_overlap(self):
        """Test Jaccard overlap and best match."""
        overlap = marker_overlap(
            {"1": ["Hba", "Hbb", "Gata1"], "2": ["Xyz"]},
            {"Erythroid": ["Hba", "Hbb"], "Liver": ["Afp"]},
        )
        assert overlap.loc["1", "Erythroid"] == pytest.approx(2 / 3)
        assert overlap.loc["1", "best_match"] == "Erythroid"
        assert overlap.loc["2", "best_match"] == ""
        assert np.all(overlap.loc["2", ["Erythroid", "Liver"]] == 0)
