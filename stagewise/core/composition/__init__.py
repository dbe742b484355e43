"""Composition analysis of clusters across developmental stages.

Counts cells per cluster and stage, measures the diversity of each stage's
cluster mix and tests clusters for stage enrichment.

Example Usage
-------------
>>> from stagewise.core.composition import CompositionEngine
>>> engine = CompositionEngine()
>>> result = engine.run(adata, cluster_key="cluster", stage_col="stage")
>>> engine.export(result, "out/composition")
"""

from .aggregation import (
    StageSummary,
    compute_composition,
    composition_wide,
    summarise_by_stage,
)
from .config import CompositionConfig
from .diversity import (
    compute_diversity_by_group,
    compute_evenness,
    compute_shannon_entropy,
    compute_simpson_index,
)
from .engine import CompositionEngine, CompositionResult
from .enrichment import (
    ENRICHMENT_COLUMNS,
    compute_stage_enrichment,
    summarize_enrichment,
)
from .viz import (
    generate_composition_figures,
    plot_composition_heatmap,
    plot_diversity_by_stage,
    plot_stacked_proportions,
)

__all__ = [
    # Aggregation
    "StageSummary",
    "compute_composition",
    "composition_wide",
    "summarise_by_stage",
    # Config
    "CompositionConfig",
    # Diversity
    "compute_diversity_by_group",
    "compute_evenness",
    "compute_shannon_entropy",
    "compute_simpson_index",
    # Engine
    "CompositionEngine",
    "CompositionResult",
    # Enrichment
    "ENRICHMENT_COLUMNS",
    "compute_stage_enrichment",
    "summarize_enrichment",
    # Viz
    "generate_composition_figures",
    "plot_composition_heatmap",
    "plot_diversity_by_stage",
    "plot_stacked_proportions",
]
