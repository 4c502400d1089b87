"""
Visualization for differential abundance reports.

All plots return PlotBundle objects holding a Figure (matplotlib), the backing
table and a suggested size.

Usage:
    >>> from cytoabundance.viz import configure_style, plot_box_plot
    >>> configure_style("paper")
    >>> bundle = plot_box_plot(data, x="feature_1", y="Frequency", title="B cells")
    >>> bundle.figure.save("b_cells.pdf")
"""

from cytoabundance.viz.core import Figure
from cytoabundance.viz.styles import Palette, PALETTES, configure_style, format_pvalue
from cytoabundance.viz.plots import (
    PlotBundle,
    plot_scatter_plot,
    plot_box_plot,
    plot_bar_plot,
    plot_line_plot,
)

__all__ = [
    'Figure',
    'Palette',
    'PALETTES',
    'configure_style',
    'format_pvalue',
    'PlotBundle',
    'plot_scatter_plot',
    'plot_box_plot',
    'plot_bar_plot',
    'plot_line_plot',
]
