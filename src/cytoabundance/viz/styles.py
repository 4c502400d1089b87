"""
Consistent visual styles for abundance report figures.

Conventions
-----------
- Feature levels use a categorical, colorblind-safe palette in level order
- Volcano points: significant = red, not significant = slate
- Frequencies are shown as percentages
- Titles carry the cell subset and its formatted FDR
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Sequence

import matplotlib.pyplot as plt
import seaborn as sns

__all__ = [
    'Palette',
    'PALETTES',
    'configure_style',
    'format_pvalue',
]


@dataclass(frozen=True)
class Palette:
    """
    Color palette for report figures.

    Attributes
    ----------
    categorical : str
        Seaborn palette name for feature levels
    significant : str
        Color for significant volcano points
    neutral : str
        Color for non-significant points and box outlines
    line : str
        Color for per-group trajectories
    highlight : str
        Color for labels and threshold lines
    """
    categorical: str = "colorblind"
    significant: str = "#dc2626"   # Red-600
    neutral: str = "#94a3b8"       # Slate-400
    line: str = "#475569"          # Slate-600
    highlight: str = "#1e293b"     # Slate-800

    def for_levels(self, levels: Sequence) -> dict:
        """Map feature levels to colors, in the given order."""
        colors = sns.color_palette(self.categorical, max(len(levels), 1)).as_hex()
        return {level: colors[i % len(colors)] for i, level in enumerate(levels)}


PALETTES = {
    "default": Palette(),
    "deep": Palette(categorical="deep"),
    "print": Palette(
        categorical="Greys",
        significant="#1a1a1a",
        neutral="#999999",
        line="#4d4d4d",
        highlight="#000000",
    ),
}


def configure_style(
    style: Literal["paper", "presentation", "notebook"] = "paper",
    palette: str | Palette = "default",
    font_scale: float = 1.0
) -> Palette:
    """
    Configure matplotlib and seaborn for consistent report figures.

    Parameters
    ----------
    style : {"paper", "presentation", "notebook"}
        Target medium.
    palette : str or Palette
        Palette name or instance.
    font_scale : float
        Multiplier for all font sizes.

    Returns
    -------
    Palette
        The configured palette.
    """
    if isinstance(palette, str):
        palette = PALETTES.get(palette, PALETTES["default"])

    base_params = {
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.edgecolor": "#333333",
        "axes.labelcolor": "#333333",
        "text.color": "#333333",
        "xtick.color": "#333333",
        "ytick.color": "#333333",
        "axes.spines.top": False,
        "axes.spines.right": False,
        "legend.frameon": False,
        "figure.max_open_warning": 0,
    }

    sizes = {
        "paper": (10, 11, 9, 300, "paper"),
        "presentation": (14, 18, 12, 150, "talk"),
        "notebook": (11, 12, 10, 100, "notebook"),
    }
    font_size, title_size, tick_size, dpi, context = sizes.get(style, sizes["paper"])

    style_params = {
        "font.size": font_size * font_scale,
        "axes.titlesize": title_size * font_scale,
        "axes.labelsize": font_size * font_scale,
        "xtick.labelsize": tick_size * font_scale,
        "ytick.labelsize": tick_size * font_scale,
        "legend.fontsize": tick_size * font_scale,
        "savefig.dpi": dpi,
    }

    sns.set_theme(style="whitegrid", context=context, font_scale=font_scale)
    plt.rcParams.update({**base_params, **style_params})

    return palette


def format_pvalue(p: float, label: str = "p") -> str:
    """
    Format a p-value (or FDR) for figure titles.

    Examples
    --------
    >>> format_pvalue(0.0004, "FDR")
    'FDR < 0.001'
    >>> format_pvalue(0.0123, "FDR")
    'FDR = 0.012'
    >>> format_pvalue(0.34)
    'p = 0.34'
    """
    if p is None or p != p:
        return f"{label} = NA"
    if p < 0.001:
        return f"{label} < 0.001"
    elif p < 0.01:
        return f"{label} = {p:.4f}"
    elif p < 0.05:
        return f"{label} = {p:.3f}"
    else:
        return f"{label} = {p:.2f}"
