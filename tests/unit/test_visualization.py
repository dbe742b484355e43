"""Unit tests for embeddings and figures."""

import re

import numpy as np
import pandas as pd
import pytest

from stagewise.core.visualization import (
    EmbeddingConfig,
    categorical_palette,
    clamp_perplexity,
    compute_embedding,
    compute_tsne,
    export_interactive_embedding,
    get_values,
    group_means,
    is_categorical_values,
    marker_gene_list,
    plot_contingency_heatmap,
    plot_embedding,
    plot_feature_grid,
    plot_k_selection,
    plot_marker_dotplot,
    plot_marker_heatmap,
    plot_violin,
    present_genes,
)


def _block_similarity(adata) -> np.ndarray:
    pcs = np.asarray(adata.obsm["X_pca"], dtype=float)
    d2 = ((pcs[:, None, :] - pcs[None, :, :]) ** 2).sum(axis=-1)
    return np.exp(-d2 / np.median(d2))


class TestEmbedding:
    """Tests for t-SNE/UMAP helpers."""

    def test_clamp_perplexity(self):
        """Test perplexity stays valid for small datasets."""
        assert clamp_perplexity(5.0, 100) == 5.0
        assert clamp_perplexity(30.0, 10) == pytest.approx(2.0)
        assert clamp_perplexity(30.0, 3) == 1.0

    def test_tsne_on_similarity(self, clustered_adata):
        """Test t-SNE on the clustering similarity."""
        del clustered_adata.obsm["X_tsne"]
        clustered_adata.obsp["similarity"] = _block_similarity(clustered_adata)

        coords = compute_tsne(clustered_adata, EmbeddingConfig(perplexity=10, random_seed=0))

        assert coords.shape == (clustered_adata.n_obs, 2)
        assert clustered_adata.obsm["X_tsne"].shape == (clustered_adata.n_obs, 2)
        assert clustered_adata.uns["tsne"]["params"]["source"] == "similarity"

    def test_tsne_on_pca(self, clustered_adata):
        """Test t-SNE falls back to PCA without a similarity."""
        coords = compute_tsne(clustered_adata, EmbeddingConfig(perplexity=500, random_seed=0))

        assert coords.shape == (clustered_adata.n_obs, 2)
        params = clustered_adata.uns["tsne"]["params"]
        assert params["source"] == "X_pca"
        assert params["perplexity"] == pytest.approx(clamp_perplexity(500, clustered_adata.n_obs))

    def test_tsne_requires_input(self, annotated_adata):
        """Test ValueError without PCA or similarity."""
        with pytest.raises(ValueError, match="X_pca"):
            compute_tsne(annotated_adata)

    def test_tsne_requires_three_cells(self, clustered_adata):
        """Test ValueError for tiny datasets."""
        with pytest.raises(ValueError, match="three cells"):
            compute_tsne(clustered_adata[:2].copy())

    def test_unknown_basis(self, clustered_adata):
        """Test ValueError for an unknown basis."""
        with pytest.raises(ValueError, match="Unknown basis"):
            compute_embedding(clustered_adata, EmbeddingConfig(basis="pca3d"))


class TestHelpers:
    """Tests for value lookup and palettes."""

    def test_get_values(self, clustered_adata):
        """Test obs columns and genes are both resolved."""
        stage = get_values(clustered_adata, "stage")
        gene = get_values(clustered_adata, "Gene_0")

        assert stage.equals(clustered_adata.obs["stage"])
        assert gene.name == "Gene_0"
        assert gene.shape == (clustered_adata.n_obs,)
        with pytest.raises(KeyError):
            get_values(clustered_adata, "not_there")

    def test_is_categorical_values(self):
        """Test categorical detection across dtypes."""
        assert is_categorical_values(pd.Series(["a", "b"]))
        assert is_categorical_values(pd.Series(pd.Categorical(["1", "2"])))
        assert is_categorical_values(pd.Series([True, False]))
        assert not is_categorical_values(pd.Series([0.1, 0.2]))

    def test_present_genes(self, clustered_adata, caplog):
        """Test missing genes are dropped with a warning, order kept."""
        genes = present_genes(clustered_adata, ["Gene_3", "Missing", "Gene_1", "Gene_3"])
        assert genes == ["Gene_3", "Gene_1"]
        assert "Missing" in caplog.text

    def test_categorical_palette(self):
        """Test fixed colours win and None entries are ignored."""
        palette = categorical_palette(["E9.5", "E10.5", "x"], {"E9.5": "#000000", "x": None})

        assert list(palette) == ["E9.5", "E10.5", "x"]
        assert palette["E9.5"] == "#000000"
        assert palette["E10.5"] != palette["x"]
        assert all(c.startswith("#") for c in palette.values())

    def test_large_palette_unique(self):
        """Test many categories still get distinct colours."""
        palette = categorical_palette([f"c{i}" for i in range(25)])
        assert len(set(palette.values())) == 25

    def test_marker_gene_list(self):
        """Test flattening keeps order and removes duplicates."""
        markers = {"1": ["A", "B", "C"], "2": ["B", "D"]}
        assert marker_gene_list(markers) == ["A", "B", "C", "D"]
        assert marker_gene_list(markers, n=1) == ["A", "B"]

    def test_group_means(self, clustered_adata):
        """Test planted genes have the highest mean in their cluster."""
        means = group_means(clustered_adata, ["Gene_0", "Gene_5"], "cluster")
        assert means["Gene_0"].idxmax() == "1"
        assert means["Gene_5"].idxmax() == "2"


class TestPlots:
    """Tests that figures are written."""

    def test_plot_embedding_categorical(self, clustered_adata, tmp_output_dir):
        """Test embedding coloured by stage with a fixed palette."""
        path = plot_embedding(
            clustered_adata,
            "stage",
            tmp_output_dir / "tsne_stage.png",
            palette={"E9.5": "#1f77b4"},
            dpi=50,
        )
        assert path.exists()

    def test_unstaged_cells_drawn_grey(self, clustered_adata):
        """Test cells without a stage are drawn as a grey NA group."""
        import matplotlib.pyplot as plt
        from stagewise.core.visualization.plots import _draw_embedding

        stages = clustered_adata.obs["stage"].copy()
        stages.iloc[:5] = np.nan
        coords = np.asarray(clustered_adata.obsm["X_tsne"])[:, :2]

        fig, ax = plt.subplots()
        _draw_embedding(ax, coords, stages, point_size=5)
        drawn = {c.get_label(): len(c.get_offsets()) for c in ax.collections}
        plt.close(fig)

        assert drawn["NA"] == 5
        assert sum(drawn.values()) == clustered_adata.n_obs

    def test_plot_embedding_gene(self, clustered_adata, tmp_output_dir):
        """Test embedding coloured by expression."""
        path = plot_embedding(clustered_adata, "Gene_2", tmp_output_dir / "g.png", dpi=50)
        assert path.exists()

    def test_plot_embedding_missing_basis(self, clustered_adata, tmp_output_dir):
        """Test KeyError when the embedding was not computed."""
        with pytest.raises(KeyError, match="X_umap"):
            plot_embedding(clustered_adata, "stage", tmp_output_dir / "u.png", basis="umap")

    def test_feature_grid(self, clustered_adata, tmp_output_dir):
        """Test gene grid and the no-gene case."""
        path = plot_feature_grid(
            clustered_adata, ["Gene_0", "Gene_5", "Gene_10"], tmp_output_dir / "grid.png", dpi=50
        )
        assert path.exists()
        assert plot_feature_grid(clustered_adata, ["Nope"], tmp_output_dir / "none.png") is None
        assert not (tmp_output_dir / "none.png").exists()

    def test_violin(self, clustered_adata, tmp_output_dir):
        """Test violin plots per cluster."""
        path = plot_violin(
            clustered_adata, ["Gene_0", "Gene_5"], "cluster", tmp_output_dir / "violin.png", dpi=50
        )
        assert path.exists()

    def test_marker_heatmap_and_dotplot(self, clustered_adata, tmp_output_dir):
        """Test marker heatmap and dot plot."""
        markers = {"1": ["Gene_0", "Gene_1"], "2": ["Gene_5"], "3": ["Gene_10"]}

        heatmap = plot_marker_heatmap(
            clustered_adata, markers, "cluster", tmp_output_dir / "heatmap.png", dpi=50
        )
        dotplot = plot_marker_dotplot(
            clustered_adata, markers, "cluster", tmp_output_dir / "dotplot.png", dpi=50
        )

        assert heatmap.exists()
        assert dotplot.exists()
        assert plot_marker_heatmap(
            clustered_adata, {"1": ["Nope"]}, "cluster", tmp_output_dir / "x.png"
        ) is None

    def test_k_selection_plot(self, tmp_output_dir):
        """Test k sweep figure with and without eigengap."""
        table = pd.DataFrame({
            "k": [2, 3, 4],
            "silhouette": [0.3, 0.6, 0.4],
            "ari": [np.nan, np.nan, np.nan],
            "nmi": [0.5, 0.9, 0.8],
            "eigengap": [0.1, 0.7, 0.2],
        })
        path = plot_k_selection(table, tmp_output_dir / "k.png", best_k=3, dpi=50)
        assert path.exists()

        path = plot_k_selection(table.drop(columns="eigengap"), tmp_output_dir / "k2.png", dpi=50)
        assert path.exists()

    def test_contingency_heatmap(self, clustered_adata, tmp_output_dir):
        """Test contingency heatmap, normalised and raw."""
        table = pd.crosstab(clustered_adata.obs["cluster"], clustered_adata.obs["truth"])

        assert plot_contingency_heatmap(table, tmp_output_dir / "norm.png", dpi=50).exists()
        assert plot_contingency_heatmap(
            table, tmp_output_dir / "raw.png", normalize=False, dpi=50
        ).exists()


class TestInteractive:
    """Tests for the plotly HTML export."""

    def test_categorical_html(self, clustered_adata, tmp_output_dir):
        """Test one HTML page with a trace per cluster."""
        path = export_interactive_embedding(
            clustered_adata,
            "cluster",
            tmp_output_dir / "tsne_cluster.html",
            hover_cols=["stage", "truth", "absent"],
        )
        html = path.read_text()
        assert path.suffix == ".html"
        assert "plotly" in html
        assert clustered_adata.obs_names[0] in html

    def test_unstaged_cells_in_html(self, clustered_adata, tmp_output_dir):
        """Test cells without a stage get their own grey trace."""
        stages = clustered_adata.obs["stage"].astype(object)
        stages.iloc[:3] = np.nan
        clustered_adata.obs["stage"] = stages
        path = export_interactive_embedding(
            clustered_adata, "stage", tmp_output_dir / "tsne_stage.html"
        )
        html = path.read_text()
        assert re.search(r'"name":\s*"NA"', html)
        assert clustered_adata.obs_names[0] in html

    def test_continuous_html(self, clustered_adata, tmp_output_dir):
        """Test gene colouring writes a page."""
        path = export_interactive_embedding(clustered_adata, "Gene_0", tmp_output_dir / "g.html")
        assert path.exists()
