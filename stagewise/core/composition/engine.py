"""Composition analysis engine.

This module provides the CompositionEngine class that orchestrates
cluster composition analysis across developmental stages.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import pandas as pd

from ..clustering.relabel import contingency_table
from .aggregation import (
    StageSummary,
    compute_composition,
    composition_wide,
    summarise_by_stage,
)
from .config import CompositionConfig
from .diversity import compute_diversity_by_group
from .enrichment import compute_stage_enrichment, summarize_enrichment


@dataclass
class CompositionResult:
    """Result of composition analysis.

    Attributes
    ----------
    composition_by_stage : pd.DataFrame
        Long table: stage, cluster, count, proportion within stage
    composition_wide : pd.DataFrame
        Stages x clusters proportions
    stage_summary : StageSummary
        Cluster x stage counts with row and column proportions
    diversity_by_stage : pd.DataFrame
        Diversity of the cluster mix per stage
    enrichment : pd.DataFrame
        Fisher enrichment per (cluster, stage)
    enrichment_summary : pd.DataFrame
        Top stage per cluster
    truth_contingency : pd.DataFrame, optional
        Cluster x ground-truth counts
    batch_contingency : pd.DataFrame, optional
        Cluster x batch counts
    provenance : Dict[str, Any]
        Execution provenance
    """

    composition_by_stage: pd.DataFrame
    composition_wide: pd.DataFrame
    stage_summary: StageSummary
    diversity_by_stage: pd.DataFrame
    enrichment: pd.DataFrame
    enrichment_summary: pd.DataFrame
    truth_contingency: Optional[pd.DataFrame] = None
    batch_contingency: Optional[pd.DataFrame] = None
    provenance: Dict[str, Any] = field(default_factory=dict)


class CompositionEngine:
    """Engine for cluster composition analysis.

    Parameters
    ----------
    config : CompositionConfig, optional
        Configuration. Uses defaults if not provided.
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> from stagewise.core.composition import CompositionEngine
    >>> engine = CompositionEngine()
    >>> result = engine.run(adata)
    >>> result.stage_summary.counts
    """

    def __init__(
        self,
        config: Optional[CompositionConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or CompositionConfig()
        self.logger = logger or logging.getLogger(__name__)

    def run(
        self,
        adata: Any,  # AnnData
        cluster_key: Optional[str] = None,
        stage_col: Optional[str] = None,
        truth_col: Optional[str] = None,
    ) -> CompositionResult:
        """Execute composition analysis.

        Parameters
        ----------
        adata : AnnData
            AnnData object with cluster and stage annotations
        cluster_key : str, optional
            Cluster column. Uses config default if None.
        stage_col : str, optional
            Stage column. Uses config default if None.
        truth_col : str, optional
            Ground-truth column. Uses config default if None; skipped if absent.

        Returns
        -------
        CompositionResult
            Composition analysis results

        Raises
        ------
        KeyError
            If the cluster or stage column is missing.
        """
        start_time = datetime.now()
        config = self.config
        cluster_key = cluster_key or config.cluster_key
        stage_col = stage_col or config.stage_col
        truth_col = truth_col or config.truth_col
        obs = adata.obs

        for col in (cluster_key, stage_col):
            if col not in obs.columns:
                raise KeyError(f"Column '{col}' not found in obs")

        # Composition of each stage
        composition_by_stage = compute_composition(obs, stage_col, cluster_key)
        wide = composition_wide(composition_by_stage, stage_col, cluster_key)

        stage_summary = summarise_by_stage(obs, cluster_key, stage_col)
        wide = wide.reindex(
            index=[s for s in stage_summary.counts.columns if s in wide.index],
            columns=[c for c in stage_summary.counts.index if c in wide.columns],
        )

        diversity = compute_diversity_by_group(
            obs,
            group_col=stage_col,
            category_col=cluster_key,
            min_cells=config.min_cells_per_group,
        )

        enrichment = compute_stage_enrichment(
            obs,
            cluster_key=cluster_key,
            stage_col=stage_col,
            correction_method=config.correction_method,
            alpha=config.alpha,
        )
        enrichment_summary = summarize_enrichment(enrichment)

        truth_contingency = None
        if truth_col in obs.columns:
            truth_contingency = contingency_table(obs[cluster_key], obs[truth_col])
            truth_contingency = truth_contingency.reindex(
                index=stage_summary.counts.index, fill_value=0
            )
        batch_contingency = None
        if config.batch_col in obs.columns:
            batch_contingency = contingency_table(obs[cluster_key], obs[config.batch_col])
            batch_contingency = batch_contingency.reindex(
                index=stage_summary.counts.index, fill_value=0
            )

        n_significant = int(enrichment["significant"].sum()) if len(enrichment) else 0
        self.logger.info(
            "Composition: %d clusters x %d stages, %d significant enrichments",
            stage_summary.counts.shape[0],
            stage_summary.counts.shape[1],
            n_significant,
        )

        provenance = {
            "timestamp": start_time.isoformat(),
            "duration_seconds": (datetime.now() - start_time).total_seconds(),
            "n_cells": int(adata.n_obs),
            "n_clusters": int(stage_summary.counts.shape[0]),
            "n_stages": int(stage_summary.counts.shape[1]),
            "cluster_key": cluster_key,
            "stage_col": stage_col,
            "config": asdict(config),
        }

        return CompositionResult(
            composition_by_stage=composition_by_stage,
            composition_wide=wide,
            stage_summary=stage_summary,
            diversity_by_stage=diversity,
            enrichment=enrichment,
            enrichment_summary=enrichment_summary,
            truth_contingency=truth_contingency,
            batch_contingency=batch_contingency,
            provenance=provenance,
        )

    def export(self, result: CompositionResult, output_dir: Path) -> Dict[str, Path]:
        """Write result tables as CSV files.

        Returns
        -------
        Dict[str, Path]
            Table name -> written file
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        tables = {
            "composition_by_stage": (result.composition_by_stage, False),
            "composition_wide": (result.composition_wide, True),
            "cluster_stage_counts": (result.stage_summary.counts, True),
            "cluster_stage_fraction_of_cluster": (result.stage_summary.cluster_fraction, True),
            "cluster_stage_fraction_of_stage": (result.stage_summary.stage_fraction, True),
            "diversity_by_stage": (result.diversity_by_stage, False),
            "stage_enrichment": (result.enrichment, False),
            "stage_enrichment_summary": (result.enrichment_summary, False),
            "cluster_truth_contingency": (result.truth_contingency, True),
            "cluster_batch_contingency": (result.batch_contingency, True),
        }

        written: Dict[str, Path] = {}
        for name, (df, index) in tables.items():
            if df is None:
                continue
            path = output_dir / f"{name}.csv"
            df.to_csv(path, index=index)
            written[name] = path

        self.logger.info("Wrote %d composition tables to %s", len(written), output_dir)
        return written
