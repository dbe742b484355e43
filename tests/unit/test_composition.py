"""Unit tests for composition analysis across stages."""

import numpy as np
import pandas as pd
import pytest

from stagewise.core.composition import (
    ENRICHMENT_COLUMNS,
    CompositionConfig,
    CompositionEngine,
    compute_composition,
    compute_diversity_by_group,
    compute_evenness,
    compute_shannon_entropy,
    compute_simpson_index,
    compute_stage_enrichment,
    composition_wide,
    generate_composition_figures,
    summarise_by_stage,
    summarize_enrichment,
)


@pytest.fixture
def stage_obs() -> pd.DataFrame:
    """Two clusters, each dominated by one of two stages (18 vs 2 cells)."""
    return pd.DataFrame({
        "cluster": ["1"] * 20 + ["2"] * 20,
        "stage": pd.Categorical(
            ["E9.5"] * 18 + ["E10.5"] * 2 + ["E9.5"] * 2 + ["E10.5"] * 18,
            categories=["E9.5", "E10.5"],
            ordered=True,
        ),
    })


class TestCompositionConfig:
    """Tests for CompositionConfig dataclass."""

    def test_default_values(self):
        """Test default configuration values."""
        config = CompositionConfig()
        assert config.cluster_key == "cluster"
        assert config.stage_col == "stage"
        assert config.correction_method == "fdr_bh"
        assert config.alpha == 0.05


class TestAggregation:
    """Tests for composition tables."""

    def test_compute_composition(self, stage_obs):
        """Test long counts and within-stage proportions."""
        comp = compute_composition(stage_obs, "stage", "cluster")

        assert list(comp.columns) == ["stage", "cluster", "count", "proportion"]
        assert comp["count"].sum() == 40
        sums = comp.groupby("stage", observed=True)["proportion"].sum()
        np.testing.assert_allclose(sums.to_numpy(), 1.0)
        row = comp[(comp["stage"] == "E9.5") & (comp["cluster"] == "1")]
        assert row["proportion"].iloc[0] == pytest.approx(0.9)

    def test_compute_composition_missing_column(self, stage_obs):
        """Test KeyError for a missing column."""
        with pytest.raises(KeyError, match="batch"):
            compute_composition(stage_obs, "batch")

    def test_composition_wide(self, stage_obs):
        """Test pivot to stages x clusters with zero fill."""
        comp = compute_composition(stage_obs.iloc[:20], "stage", "cluster")
        wide = composition_wide(comp, "stage", "cluster")
        assert wide.shape == (2, 1)
        assert wide.columns.name == "cluster"

    def test_summarise_by_stage(self, stage_obs):
        """Test counts and both proportion tables."""
        summary = summarise_by_stage(stage_obs)

        assert list(summary.counts.index) == ["1", "2"]
        assert list(summary.counts.columns) == ["E9.5", "E10.5"]
        assert summary.counts.loc["1", "E9.5"] == 18
        np.testing.assert_allclose(summary.cluster_fraction.sum(axis=1), 1.0)
        np.testing.assert_allclose(summary.stage_fraction.sum(axis=0), 1.0)
        assert summary.counts.index.name == "cluster"
        assert summary.counts.columns.name == "stage"

    def test_summarise_with_stage_order(self, stage_obs):
        """Test an explicit stage order wins over the categorical order."""
        summary = summarise_by_stage(stage_obs, stage_order=["E10.5", "E9.5"])
        assert list(summary.counts.columns) == ["E10.5", "E9.5"]

    def test_summarise_skips_unstaged_cells(self):
        """Test cells without a parsed stage are not counted as a stage."""
        obs = pd.DataFrame({
            "cluster": ["1", "1", "2", "2"],
            "stage": ["E9.5", np.nan, "E10.5", np.nan],
        })
        summary = summarise_by_stage(obs, stage_order=["E9.5", "E10.5"])

        assert list(summary.counts.columns) == ["E9.5", "E10.5"]
        assert summary.counts.to_numpy().sum() == 2
        comp = compute_composition(obs, "stage", "cluster")
        assert comp["count"].sum() == summary.counts.to_numpy().sum()

    def test_summarise_missing_column(self, stage_obs):
        """Test KeyError when the cluster column is missing."""
        with pytest.raises(KeyError):
            summarise_by_stage(stage_obs, cluster_key="leiden")


class TestDiversity:
    """Tests for diversity metrics."""

    def test_metrics(self):
        """Test known values."""
        assert compute_shannon_entropy(np.array([0, 0])) == 0.0
        assert compute_shannon_entropy(np.array([5, 5])) == pytest.approx(np.log(2))
        assert compute_simpson_index(np.array([5, 5])) == pytest.approx(0.5)
        assert compute_simpson_index(np.array([])) == 0.0
        assert compute_evenness(np.array([7])) == 1.0
        assert compute_evenness(np.array([5, 5, 0])) == pytest.approx(1.0)

    def test_diversity_by_stage(self, stage_obs):
        """Test one row per stage with the expected metrics."""
        div = compute_diversity_by_group(stage_obs, "stage", "cluster")

        assert list(div["stage"].astype(str)) == ["E9.5", "E10.5"]
        assert (div["n_cells"] == 20).all()
        assert (div["n_types"] == 2).all()
        assert div["simpson_index"].iloc[0] == pytest.approx(1 - 0.81 - 0.01)

    def test_min_cells(self, stage_obs):
        """Test small groups get NaN metrics."""
        div = compute_diversity_by_group(stage_obs, "stage", "cluster", min_cells=21)
        assert div["shannon_entropy"].isna().all()


class TestEnrichment:
    """Tests for Fisher stage enrichment."""

    def test_enrichment_direction(self, stage_obs):
        """Test each cluster is enriched in its dominant stage."""
        enrichment = compute_stage_enrichment(stage_obs)

        assert list(enrichment.columns) == ENRICHMENT_COLUMNS
        assert len(enrichment) == 4
        lookup = enrichment.set_index(["cluster", "stage"])
        assert lookup.loc[("1", "E9.5"), "direction"] == "enriched"
        assert lookup.loc[("1", "E10.5"), "direction"] == "depleted"
        assert lookup.loc[("2", "E10.5"), "direction"] == "enriched"
        assert lookup.loc[("1", "E9.5"), "n_cluster_in_stage"] == 18
        assert lookup.loc[("1", "E9.5"), "expected"] == pytest.approx(10.0)
        assert enrichment["significant"].all()
        assert (enrichment["p_adjusted"] >= enrichment["p_value"]).all()

    def test_single_stage_empty(self, stage_obs):
        """Test an empty table with the right columns for one stage."""
        obs = stage_obs.assign(stage="E9.5")
        enrichment = compute_stage_enrichment(obs)
        assert enrichment.empty
        assert list(enrichment.columns) == ENRICHMENT_COLUMNS

    def test_summary(self, stage_obs):
        """Test the top stage per cluster."""
        summary = summarize_enrichment(compute_stage_enrichment(stage_obs))

        assert list(summary["cluster"]) == ["1", "2"]
        assert list(summary["top_stage"]) == ["E9.5", "E10.5"]
        assert (summary["n_significant"] == 2).all()

    def test_summary_empty(self):
        """Test summarising an empty enrichment table."""
        summary = summarize_enrichment(pd.DataFrame(columns=ENRICHMENT_COLUMNS))
        assert summary.empty
        assert "top_stage" in summary.columns


class TestCompositionEngine:
    """Tests for CompositionEngine."""

    def test_run(self, clustered_adata):
        """Test a full run on the mock dataset."""
        result = CompositionEngine().run(clustered_adata)

        assert result.stage_summary.counts.to_numpy().sum() == clustered_adata.n_obs
        assert list(result.stage_summary.counts.index) == ["1", "2", "3"]
        assert result.truth_contingency is not None
        assert result.batch_contingency is not None
        assert list(result.composition_wide.columns) == ["1", "2", "3"]
        assert len(result.enrichment) == 9
        assert result.provenance["n_clusters"] == 3
        assert result.provenance["cluster_key"] == "cluster"

    def test_run_missing_column(self, clustered_adata):
        """Test KeyError when the stage column is missing."""
        with pytest.raises(KeyError, match="age"):
            CompositionEngine().run(clustered_adata, stage_col="age")

    def test_run_without_truth(self, clustered_adata):
        """Test optional contingencies are skipped when columns are absent."""
        del clustered_adata.obs["truth"]
        del clustered_adata.obs["batch"]
        result = CompositionEngine().run(clustered_adata)
        assert result.truth_contingency is None
        assert result.batch_contingency is None

    def test_export_and_figures(self, clustered_adata, tmp_output_dir):
        """Test tables and figures are written."""
        engine = CompositionEngine(CompositionConfig(dpi=50))
        result = engine.run(clustered_adata)

        written = engine.export(result, tmp_output_dir / "tables")
        assert len(written) == 10
        assert all(p.exists() for p in written.values())
        counts = pd.read_csv(written["cluster_stage_counts"], index_col=0)
        assert counts.to_numpy().sum() == clustered_adata.n_obs

        figures = generate_composition_figures(result, tmp_output_dir / "figures", dpi=50)
        assert set(figures) == {"stages_per_cluster", "clusters_per_stage", "heatmap", "diversity"}
        assert all(p is not None and p.exists() for p in figures.values())
