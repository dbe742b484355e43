"""Interactive HTML embedding (plotly)."""

from pathlib import Path
from typing import Dict, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from .plots import _basis_coords, get_values, is_categorical_values
from .style import categorical_palette

logger = logging.getLogger(__name__)


def export_interactive_embedding(
    adata,
    color: str,
    output_path: Path,
    basis: str = "tsne",
    hover_cols: Optional[Sequence[str]] = None,
    palette: Optional[Dict[str, str]] = None,
    point_size: float = 5.0,
) -> Path:
    """Write the embedding as a standalone plotly HTML page.

    Categorical colours get one trace per category (toggle from the
    legend); continuous values use a colour scale.

    Parameters
    ----------
    adata : AnnData
        Dataset with ``obsm[f"X_{basis}"]``
    color : str
        obs column or gene
    output_path : Path
        HTML file to write
    hover_cols : Sequence[str], optional
        obs columns shown on hover (cell id always shown)

    Returns
    -------
    Path
        Path to saved HTML
    """
    import plotly.graph_objects as go

    coords = _basis_coords(adata, basis)
    values = get_values(adata, color)
    hover_cols = [c for c in (hover_cols or []) if c in adata.obs.columns]

    hover = pd.Series(adata.obs_names.astype(str), index=adata.obs_names)
    for col in hover_cols:
        hover = hover + f"<br>{col}: " + adata.obs[col].astype(str)
    hover = hover.to_numpy()

    fig = go.Figure()
    if is_categorical_values(values):
        cats = values.astype("category")
        labels = cats.astype(str).to_numpy()
        categories = [str(c) for c in cats.cat.categories]
        colors = categorical_palette(categories, palette)
        missing = cats.isna().to_numpy()
        if missing.any():
            fig.add_trace(go.Scattergl(
                x=coords[missing, 0],
                y=coords[missing, 1],
                mode="markers",
                name="NA",
                text=hover[missing],
                hoverinfo="text+name",
                marker={"size": point_size, "color": "lightgrey"},
            ))
        for cat in categories:
            mask = (labels == cat) & ~missing
            if not mask.any():
                continue
            fig.add_trace(go.Scattergl(
                x=coords[mask, 0],
                y=coords[mask, 1],
                mode="markers",
                name=cat,
                text=hover[mask],
                hoverinfo="text+name",
                marker={"size": point_size, "color": colors[cat]},
            ))
    else:
        fig.add_trace(go.Scattergl(
            x=coords[:, 0],
            y=coords[:, 1],
            mode="markers",
            name=color,
            text=hover,
            hoverinfo="text",
            marker={
                "size": point_size,
                "color": np.asarray(values, dtype=float),
                "colorscale": "Viridis",
                "showscale": True,
                "colorbar": {"title": color},
            },
        ))

    fig.update_layout(
        title=f"{basis.upper()} coloured by {color}",
        xaxis_title=f"{basis.upper()}1",
        yaxis_title=f"{basis.upper()}2",
        template="plotly_white",
        legend={"itemsizing": "constant"},
    )

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.write_html(str(output_path), include_plotlyjs="cdn")
    logger.info("Wrote interactive embedding to %s", output_path)
    return output_path
