"""Unit tests for the clustering engine."""

import numpy as np
import pandas as pd
import pytest
from sklearn.metrics import adjusted_rand_score

from stagewise.core.clustering import (
    ClusteringConfig,
    ClusteringEngine,
    ClusteringResult,
    to_cluster_labels,
)


class TestClusteringConfig:
    """Tests for ClusteringConfig dataclass."""

    def test_default_values(self):
        """Test default configuration values."""
        config = ClusteringConfig()
        assert config.method == "simlr"
        assert config.n_clusters == 8
        assert config.n_pcs == 30
        assert config.kernel_neighbors == [10, 20, 30]
        assert config.kernel_sigmas == [1.0, 1.5, 2.0]
        assert config.random_seed == 1337
        assert config.key_added == "cluster"

    def test_custom_values(self):
        """Test custom configuration values."""
        config = ClusteringConfig(method="kmeans", n_clusters=4, n_pcs=10)
        assert config.method == "kmeans"
        assert config.n_clusters == 4
        assert config.n_pcs == 10


class TestClusterLabels:
    """Tests for to_cluster_labels."""

    def test_one_based_numeric_order(self):
        """Test labels start at 1 and sort numerically."""
        labels = to_cluster_labels(np.array([0, 9, 1, 10, 0]))
        assert list(labels) == ["1", "10", "2", "11", "1"]
        assert list(labels.categories) == ["1", "2", "10", "11"]


class TestClusteringEngine:
    """Tests for ClusteringEngine."""

    def test_compute_pca_clamps_components(self, mock_adata):
        """Test that n_pcs is clamped to the data size."""
        engine = ClusteringEngine(ClusteringConfig(n_pcs=100))
        n = engine.compute_pca(mock_adata)
        assert n == mock_adata.n_vars - 1
        assert mock_adata.obsm["X_pca"].shape == (mock_adata.n_obs, n)
        assert "pca" in mock_adata.uns

    def test_compute_pca_leaves_x_unscaled(self, mock_adata):
        """Test that X is untouched by scaling."""
        before = mock_adata.X.copy()
        ClusteringEngine(ClusteringConfig(n_pcs=5)).compute_pca(mock_adata)
        np.testing.assert_array_equal(mock_adata.X, before)

    def test_similarity_properties(self, mock_adata):
        """Test symmetry, zero diagonal and non-negativity."""
        engine = ClusteringEngine(ClusteringConfig(n_pcs=10, kernel_neighbors=[5, 10]))
        engine.compute_pca(mock_adata)
        S = engine.build_similarity(mock_adata)
        assert S.shape == (mock_adata.n_obs, mock_adata.n_obs)
        np.testing.assert_allclose(S, S.T)
        assert np.all(np.diag(S) == 0)
        assert np.all(S >= 0)
        assert mock_adata.uns["similarity"]["n_kernels"] == 6
        assert "similarity" in mock_adata.obsp

    def test_similarity_higher_within_clusters(self, mock_adata):
        """Test planted clusters are more similar within than between."""
        engine = ClusteringEngine(ClusteringConfig(n_pcs=10))
        engine.compute_pca(mock_adata)
        S = engine.build_similarity(mock_adata)
        planted = mock_adata.obs["planted"].to_numpy()
        same = planted[:, None] == planted[None, :]
        np.fill_diagonal(same, False)
        different = planted[:, None] != planted[None, :]
        assert S[same].mean() > S[different].mean()

    def test_similarity_needs_pca(self, mock_adata):
        """Test that PCA is required."""
        with pytest.raises(ValueError, match="PCA not found"):
            ClusteringEngine().build_similarity(mock_adata)

    @pytest.mark.parametrize("method", ["simlr", "kmeans"])
    def test_recovers_planted_clusters(self, mock_adata, method):
        """Test that well-separated clusters are recovered."""
        config = ClusteringConfig(method=method, n_clusters=3, n_pcs=10)
        result = ClusteringEngine(config).run(mock_adata)

        assert isinstance(result, ClusteringResult)
        assert result.n_clusters == 3
        assert result.method == method
        assert sum(result.cluster_sizes.values()) == mock_adata.n_obs
        labels = mock_adata.obs["cluster"]
        assert isinstance(labels.dtype, pd.CategoricalDtype)
        assert set(labels.cat.categories) == {"1", "2", "3"}
        ari = adjusted_rand_score(mock_adata.obs["planted"], labels.astype(str))
        assert ari > 0.9

    def test_leiden(self, mock_adata):
        """Test graph clustering ignores n_clusters."""
        config = ClusteringConfig(method="leiden", n_pcs=10, neighbors_k=10)
        result = ClusteringEngine(config).run(mock_adata)
        assert result.n_clusters >= 2
        assert "_leiden" not in mock_adata.obs.columns
        assert mock_adata.obs["cluster"].astype(int).min() == 1

    def test_custom_key(self, mock_adata):
        """Test labels stored under key_added."""
        engine = ClusteringEngine(ClusteringConfig(n_pcs=10))
        result = engine.run_clustering(mock_adata, n_clusters=2, method="kmeans", key_added="k2")
        assert result.cluster_key == "k2"
        assert mock_adata.obs["k2"].nunique() == 2

    @pytest.mark.parametrize("k", [1, 1000])
    def test_invalid_k(self, mock_adata, k):
        """Test k outside [2, n_obs]."""
        with pytest.raises(ValueError, match="n_clusters"):
            ClusteringEngine().run_clustering(mock_adata, n_clusters=k)

    def test_unknown_method(self, mock_adata):
        """Test unknown method."""
        with pytest.raises(ValueError, match="Unknown clustering method"):
            ClusteringEngine().run_clustering(mock_adata, n_clusters=3, method="dbscan")
