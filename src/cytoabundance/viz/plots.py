"""
Generic plotting helpers returning plot bundles.

Every helper returns a PlotBundle: the rendered Figure, the table backing it
(exported next to the figure as CSV) and the suggested width/height in inches.
Table-only report entries use a bundle without a figure.

Helpers:
    plot_scatter_plot  labelled scatter (volcano plots)
    plot_box_plot      distribution of a value across categories
    plot_bar_plot      one bar per sample, ordered as given, filled by category
    plot_line_plot     one line per group across ordered categories
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from adjustText import adjust_text
from matplotlib.ticker import PercentFormatter

from cytoabundance.viz.core import Figure
from cytoabundance.viz.styles import PALETTES, Palette

__all__ = [
    'PlotBundle',
    'plot_scatter_plot',
    'plot_box_plot',
    'plot_bar_plot',
    'plot_line_plot',
    'ordered_levels',
]


@dataclass
class PlotBundle:
    """
    A renderable figure plus the data needed to export it.

    Attributes:
        figure: Rendered figure, or None for table-only entries.
        data: Backing table for export.
        width: Suggested width in inches.
        height: Suggested height in inches.
    """
    figure: Optional[Figure]
    data: pd.DataFrame
    width: float = 6.0
    height: float = 4.0

    def close(self):
        if self.figure is not None:
            self.figure.close()


def ordered_levels(values: pd.Series) -> list:
    """Distinct non-missing values, sorted when they are mutually comparable."""
    levels = list(pd.unique(values.dropna()))
    try:
        return sorted(levels)
    except TypeError:
        return levels


def _resolve_palette(palette: Optional[Palette]) -> Palette:
    return palette if palette is not None else PALETTES["default"]


def _percent_axis(ax):
    ax.yaxis.set_major_formatter(PercentFormatter(xmax=1.0))


def plot_scatter_plot(
    data: pd.DataFrame,
    x: str,
    y: str,
    label: Optional[str] = None,
    title: Optional[str] = None,
    significance: Optional[str] = "FDR",
    threshold: float = 0.05,
    palette: Optional[Palette] = None,
    figsize: tuple[float, float] = (6.0, 5.0),
) -> PlotBundle:
    """
    Scatter plot with optional non-overlapping point labels.

    Points are colored as significant when the ``significance`` column is below
    ``threshold``. Infinite y values (e.g. -log10 of an FDR of 0) are drawn at
    the top of the finite range.
    """
    palette = _resolve_palette(palette)
    fig, ax = plt.subplots(figsize=figsize)

    x_values = data[x].astype(float).to_numpy()
    y_values = data[y].astype(float).to_numpy()
    finite = np.isfinite(y_values)
    if finite.any() and not finite.all():
        y_values = np.where(finite, y_values, np.nanmax(y_values[finite]) * 1.05 + 1e-9)

    if significance is not None and significance in data.columns:
        is_significant = (data[significance].astype(float) < threshold).to_numpy()
        colors = np.where(is_significant, palette.significant, palette.neutral)
    else:
        colors = palette.neutral

    ax.scatter(x_values, y_values, c=colors, s=28, alpha=0.85, edgecolors="white", linewidths=0.5)
    ax.axvline(0, color=palette.neutral, linestyle=":", linewidth=0.8)

    if label is not None:
        texts = [
            ax.text(xv, yv, str(text), fontsize=8, color=palette.highlight)
            for xv, yv, text in zip(x_values, y_values, data[label])
            if np.isfinite(xv) and np.isfinite(yv)
        ]
        if texts:
            adjust_text(
                texts, ax=ax,
                arrowprops=dict(arrowstyle="-", color=palette.neutral, lw=0.5),
            )

    ax.set_xlabel(x)
    ax.set_ylabel(y)
    if title:
        ax.set_title(title)
    fig.tight_layout()

    figure = Figure(
        fig=fig,
        title=title or f"{y} vs {x}",
        description=f"Scatter of {y} against {x} ({len(data)} points)",
        metadata={"x": x, "y": y},
    )
    return PlotBundle(figure=figure, data=data, width=figsize[0], height=figsize[1])


def plot_box_plot(
    data: pd.DataFrame,
    x: str,
    y: str,
    title: Optional[str] = None,
    xlabel: Optional[str] = None,
    percent: bool = True,
    palette: Optional[Palette] = None,
) -> PlotBundle:
    """Box plot of ``y`` per level of ``x`` with individual values overlaid."""
    palette = _resolve_palette(palette)
    levels = ordered_levels(data[x])
    width = max(3.0, 1.5 + 0.8 * len(levels))
    height = 4.0

    plot_data = data[[x, y]].dropna(subset=[x]).copy()
    plot_data[x] = plot_data[x].astype(str)
    order = [str(level) for level in levels]
    colors = {str(level): color for level, color in palette.for_levels(levels).items()}

    fig, ax = plt.subplots(figsize=(width, height))
    sns.boxplot(
        data=plot_data, x=x, y=y, order=order, hue=x, hue_order=order,
        palette=colors, legend=False, showfliers=False, ax=ax,
    )
    sns.stripplot(
        data=plot_data, x=x, y=y, order=order,
        color=palette.highlight, size=3, alpha=0.7, ax=ax,
    )

    if percent:
        _percent_axis(ax)
    ax.set_xlabel(xlabel if xlabel is not None else x)
    ax.set_ylabel(y)
    if title:
        ax.set_title(title)
    fig.tight_layout()

    figure = Figure(
        fig=fig,
        title=title or f"{y} by {x}",
        description=f"Distribution of {y} across {len(levels)} levels of {xlabel or x}",
        metadata={"x": x, "y": y},
    )
    return PlotBundle(figure=figure, data=data, width=width, height=height)


def plot_bar_plot(
    data: pd.DataFrame,
    x: str,
    y: str,
    fill: Optional[str] = None,
    ascending: Optional[bool] = None,
    title: Optional[str] = None,
    percent: bool = True,
    palette: Optional[Palette] = None,
) -> PlotBundle:
    """
    One bar per row, colored by ``fill`` and labelled with ``x``.

    Rows keep their order unless ``ascending`` is given, in which case they
    are stably sorted by ``y``. ``x`` values are only tick labels, so repeated
    or missing labels still get one bar per row.
    """
    palette = _resolve_palette(palette)
    if ascending is None:
        plot_data = data.reset_index(drop=True)
    else:
        plot_data = data.sort_values(y, ascending=ascending, kind="mergesort").reset_index(drop=True)

    width = max(4.0, 1.5 + 0.25 * len(plot_data))
    height = 4.0
    fig, ax = plt.subplots(figsize=(width, height))

    if fill is not None:
        levels = ordered_levels(data[fill])
        color_map = palette.for_levels(levels)
        colors = [color_map.get(value, palette.neutral) for value in plot_data[fill]]
        handles = [mpatches.Patch(color=color_map[level], label=str(level)) for level in levels]
    else:
        colors = palette.neutral
        handles = []

    positions = np.arange(len(plot_data))
    ax.bar(positions, plot_data[y].astype(float), color=colors, edgecolor="white", linewidth=0.5)
    ax.set_xticks(positions)
    ax.set_xticklabels(["" if pd.isna(v) else str(v) for v in plot_data[x]], rotation=90)

    if handles:
        ax.legend(handles=handles, title=fill, loc="upper left", bbox_to_anchor=(1.0, 1.0))
    if percent:
        _percent_axis(ax)
    ax.set_xlabel(x)
    ax.set_ylabel(y)
    if title:
        ax.set_title(title)
    fig.tight_layout()

    figure = Figure(
        fig=fig,
        title=title or f"{y} per {x}",
        description=f"{y} for {len(plot_data)} {x} values",
        metadata={"x": x, "y": y, "fill": fill},
    )
    return PlotBundle(figure=figure, data=data, width=width, height=height)


def plot_line_plot(
    data: pd.DataFrame,
    x: str,
    y: str,
    group: str,
    title: Optional[str] = None,
    xlabel: Optional[str] = None,
    percent: bool = True,
    palette: Optional[Palette] = None,
    export_data: Optional[pd.DataFrame] = None,
    width: Optional[float] = None,
    height: Optional[float] = None,
) -> PlotBundle:
    """
    One line per ``group`` across the ordered levels of ``x``.

    Each line is labelled with its group at the last level of ``x``. The bundle
    exports ``export_data`` when given (e.g. a wide pivot of the plotted values),
    otherwise the plotted long table.
    """
    palette = _resolve_palette(palette)
    levels = ordered_levels(data[x])
    positions = {level: i for i, level in enumerate(levels)}
    width = width if width is not None else max(3.0, 1.5 + 0.8 * len(levels))
    height = height if height is not None else 4.0

    fig, ax = plt.subplots(figsize=(width, height))
    last_level = levels[-1] if levels else None

    for group_value, group_data in data.groupby(group, sort=True):
        group_data = group_data[group_data[x].isin(positions)]
        group_data = group_data.assign(_pos=group_data[x].map(positions)).sort_values("_pos")
        ax.plot(
            group_data["_pos"], group_data[y].astype(float),
            color=palette.line, marker="o", markersize=3, linewidth=1.0, alpha=0.8,
        )
        at_last = group_data[group_data[x] == last_level]
        if not at_last.empty:
            ax.annotate(
                str(group_value),
                xy=(1.0, float(at_last[y].iloc[0])),
                xycoords=("axes fraction", "data"),
                xytext=(4, 0), textcoords="offset points",
                va="center", fontsize=7, color=palette.highlight,
            )

    ax.set_xticks(range(len(levels)))
    ax.set_xticklabels([str(level) for level in levels])
    if percent:
        _percent_axis(ax)
    ax.set_xlabel(xlabel if xlabel is not None else x)
    ax.set_ylabel(y)
    if title:
        ax.set_title(title)
    fig.tight_layout()

    figure = Figure(
        fig=fig,
        title=title or f"{y} by {x} per {group}",
        description=f"{y} across {len(levels)} levels of {xlabel or x}, one line per {group}",
        metadata={"x": x, "y": y, "group": group},
    )
    return PlotBundle(
        figure=figure,
        data=export_data if export_data is not None else data,
        width=width,
        height=height,
    )
