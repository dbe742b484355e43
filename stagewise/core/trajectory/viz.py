"""Pseudo-time figures."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from ..visualization.style import categorical_palette, save_figure, set_style

logger = logging.getLogger(__name__)


def plot_pseudotime_by_stage(
    adata,
    output_path: Path,
    pseudotime_key: str = "dpt_pseudotime",
    stage_col: str = "stage",
    stage_order: Optional[Sequence[str]] = None,
    palette: Optional[Dict[str, str]] = None,
    dpi: int = 200,
    figsize: Tuple[float, float] = (8, 4.5),
) -> Optional[Path]:
    """Boxplot of pseudo-time per stage with cells overlaid."""
    import matplotlib.pyplot as plt
    import seaborn as sns

    set_style()
    for col in (pseudotime_key, stage_col):
        if col not in adata.obs.columns:
            logger.warning("Column '%s' not found, skipping plot", col)
            return None

    df = pd.DataFrame({
        "stage": adata.obs[stage_col].astype(str).to_numpy(),
        "pseudotime": adata.obs[pseudotime_key].to_numpy(dtype=float),
    })
    df = df[np.isfinite(df["pseudotime"])]
    order = [str(s) for s in stage_order] if stage_order else sorted(df["stage"].unique())
    order = [s for s in order if s in set(df["stage"])]

    fig, ax = plt.subplots(figsize=figsize)
    sns.boxplot(
        data=df,
        x="stage",
        y="pseudotime",
        hue="stage",
        order=order,
        hue_order=order,
        ax=ax,
        palette=categorical_palette(order, palette),
        legend=False,
        showfliers=False,
    )
    sns.stripplot(
        data=df,
        x="stage",
        y="pseudotime",
        order=order,
        ax=ax,
        color="black",
        alpha=0.3,
        size=2,
    )
    ax.set_xlabel("Stage")
    ax.set_ylabel("Pseudo-time")
    ax.set_title("Pseudo-time by developmental stage")
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def plot_paga_connectivities(
    connectivities: pd.DataFrame,
    output_path: Path,
    dpi: int = 200,
) -> Path:
    """Heatmap of PAGA connectivities between groups."""
    import matplotlib.pyplot as plt
    import seaborn as sns

    set_style()
    n = len(connectivities)
    fig, ax = plt.subplots(figsize=(max(5, 0.45 * n + 2), max(4, 0.45 * n + 1)))
    sns.heatmap(
        connectivities,
        ax=ax,
        cmap="magma_r",
        vmin=0,
        vmax=1,
        square=True,
        cbar_kws={"label": "PAGA connectivity"},
    )
    ax.set_title("Cluster connectivity")
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)
