"""Composition visualization functions.

Provides:
- Stacked proportion bars (stages per cluster, clusters per stage)
- Cluster x stage proportion heatmap
- Diversity per stage
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Tuple
import logging

import numpy as np
import pandas as pd

from ..visualization.style import categorical_palette, save_figure, set_style

logger = logging.getLogger(__name__)


def plot_stacked_proportions(
    fractions: pd.DataFrame,
    output_path: Path,
    palette: Optional[Dict[str, str]] = None,
    title: str = "",
    xlabel: str = "",
    legend_title: str = "",
    dpi: int = 200,
    figsize: Optional[Tuple[float, float]] = None,
) -> Path:
    """Stacked bars, one bar per row of ``fractions``, segments per column.

    Parameters
    ----------
    fractions : pd.DataFrame
        Rows are bars, columns are stacked segments (rows sum to 1)
    output_path : Path
        Output file path
    palette : Dict[str, str], optional
        Fixed colours per column (e.g. stage colours)

    Returns
    -------
    Path
        Path to saved figure
    """
    import matplotlib.pyplot as plt

    set_style()
    if figsize is None:
        figsize = (max(6, 0.45 * len(fractions) + 3), 5)

    colors = categorical_palette(fractions.columns, palette)
    fig, ax = plt.subplots(figsize=figsize)
    x = np.arange(len(fractions))
    bottom = np.zeros(len(fractions))
    for col in fractions.columns:
        values = fractions[col].to_numpy(dtype=float)
        ax.bar(x, values, bottom=bottom, color=colors[str(col)], label=str(col), width=0.8)
        bottom += values

    ax.set_xticks(x)
    ax.set_xticklabels([str(i) for i in fractions.index], rotation=45, ha="right")
    ax.set_ylim(0, 1)
    ax.set_ylabel("Proportion of cells")
    ax.set_xlabel(xlabel or (fractions.index.name or ""))
    ax.set_title(title)
    ax.legend(
        title=legend_title or (fractions.columns.name or ""),
        bbox_to_anchor=(1.02, 1),
        loc="upper left",
        frameon=False,
    )
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def plot_composition_heatmap(
    fractions: pd.DataFrame,
    output_path: Path,
    title: str = "Cluster composition by stage",
    dpi: int = 200,
) -> Path:
    """Heatmap of a cluster x stage proportion table."""
    import matplotlib.pyplot as plt
    import seaborn as sns

    set_style()
    fig, ax = plt.subplots(
        figsize=(max(6, 0.6 * fractions.shape[1] + 2), max(4, 0.4 * fractions.shape[0] + 1))
    )
    sns.heatmap(
        fractions,
        ax=ax,
        cmap="viridis",
        vmin=0,
        annot=fractions.size <= 300,
        fmt=".2f",
        cbar_kws={"label": "Proportion"},
        linewidths=0.5,
    )
    ax.set_title(title)
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def plot_diversity_by_stage(
    diversity: pd.DataFrame,
    output_path: Path,
    stage_col: str = "stage",
    dpi: int = 200,
    figsize: Tuple[float, float] = (10, 4),
) -> Optional[Path]:
    """Shannon entropy and evenness of the cluster mix per stage."""
    import matplotlib.pyplot as plt

    set_style()
    if diversity.empty or stage_col not in diversity.columns:
        logger.warning("No diversity data to plot")
        return None

    fig, axes = plt.subplots(1, 2, figsize=figsize)
    stages = diversity[stage_col].astype(str)
    for ax, metric, label in (
        (axes[0], "shannon_entropy", "Shannon Entropy (nats)"),
        (axes[1], "evenness", "Pielou Evenness"),
    ):
        ax.plot(stages, diversity[metric], marker="o", color="#3b528b")
        ax.set_xlabel("Stage")
        ax.set_ylabel(label)
        plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    axes[1].set_ylim(0, 1.05)
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def generate_composition_figures(
    result,
    output_dir: Path,
    stage_palette: Optional[Dict[str, str]] = None,
    dpi: int = 200,
) -> Dict[str, Optional[Path]]:
    """Generate all composition figures for a ``CompositionResult``."""
    output_dir = Path(output_dir)
    summary = result.stage_summary
    outputs: Dict[str, Optional[Path]] = {}

    outputs["stages_per_cluster"] = plot_stacked_proportions(
        summary.cluster_fraction,
        output_dir / "composition_stages_per_cluster.png",
        palette=stage_palette,
        title="Stage make-up of each cluster",
        dpi=dpi,
    )
    outputs["clusters_per_stage"] = plot_stacked_proportions(
        summary.stage_fraction.T,
        output_dir / "composition_clusters_per_stage.png",
        title="Cluster make-up of each stage",
        dpi=dpi,
    )
    outputs["heatmap"] = plot_composition_heatmap(
        summary.stage_fraction,
        output_dir / "composition_heatmap.png",
        dpi=dpi,
    )
    stage_col = summary.counts.columns.name or "stage"
    outputs["diversity"] = plot_diversity_by_stage(
        result.diversity_by_stage,
        output_dir / "composition_diversity.png",
        stage_col=stage_col,
        dpi=dpi,
    )
    return outputs
