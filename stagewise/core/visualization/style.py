"""Shared plot style, palettes and figure saving."""

from pathlib import Path
from typing import Dict, Iterable, Optional

import numpy as np


def set_style():
    """Set publication-quality plot style."""
    import matplotlib.pyplot as plt

    plt.rcParams.update({
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.grid": False,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "font.size": 10,
        "axes.labelsize": 11,
        "axes.titlesize": 12,
        "xtick.labelsize": 9,
        "ytick.labelsize": 9,
        "legend.fontsize": 9,
    })


def save_figure(fig, output_path: Path, dpi: int = 200) -> Path:
    """Save figure and close."""
    import matplotlib.pyplot as plt

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig.savefig(output_path, dpi=dpi, bbox_inches="tight", facecolor="white")
    plt.close(fig)

    return output_path


def categorical_palette(
    categories: Iterable,
    fixed: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """Map categories to hex colours.

    Colours from ``fixed`` (e.g. stage colours) win; the rest come from
    tab10, tab20 or a spread of ``hsv`` depending on how many are needed.
    """
    import matplotlib.pyplot as plt
    from matplotlib.colors import to_hex

    categories = [str(c) for c in categories]
    fixed = {str(k): v for k, v in (fixed or {}).items() if v}
    free = [c for c in categories if c not in fixed]
    n = len(free)
    if n <= 10:
        colors = [plt.cm.tab10(i) for i in range(n)]
    elif n <= 20:
        colors = [plt.cm.tab20(i) for i in range(n)]
    else:
        colors = [plt.cm.hsv(x) for x in np.linspace(0, 1, n, endpoint=False)]

    palette = {c: fixed[c] for c in categories if c in fixed}
    palette.update({c: to_hex(col) for c, col in zip(free, colors)})
    return palette
