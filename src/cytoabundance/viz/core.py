"""
Figure wrapper used by every plot in the package.

Figure pairs a matplotlib figure with a title, description and creation
metadata so reports can save, embed or close plots uniformly.
"""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

import matplotlib.figure
import matplotlib.pyplot as plt

OutputFormat = Literal["png", "pdf", "svg", "html"]

_SUPPORTED_FORMATS = ("png", "pdf", "svg", "html")


@dataclass
class Figure:
    """
    Matplotlib figure with report metadata.

    Attributes
    ----------
    fig : matplotlib.figure.Figure
        The underlying figure
    title : str
        Human-readable title
    description : str
        What the figure shows
    metadata : dict
        Creation time and plotting parameters

    Examples
    --------
    >>> bundle = plot_box_plot(data, x="feature_1", y="Frequency", title="B cells")
    >>> bundle.figure.save("b_cells.pdf")
    """
    fig: matplotlib.figure.Figure
    title: str
    description: str = ""
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if "created_at" not in self.metadata:
            self.metadata["created_at"] = datetime.now().isoformat()

    def save(
        self,
        path: Path | str,
        format: Optional[OutputFormat] = None,
        dpi: int = 300,
        **kwargs
    ) -> Path:
        """
        Save figure to file.

        Parameters
        ----------
        path : Path or str
            Output file path. Format inferred from extension if not specified.
        format : str, optional
            Output format; unknown extensions fall back to png.
        dpi : int, default 300
            DPI for raster output.

        Returns
        -------
        Path
            The path where the figure was saved.
        """
        path = Path(path)

        if format is None:
            format = path.suffix.lstrip(".").lower()
            if format not in _SUPPORTED_FORMATS:
                format = "png"

        path.parent.mkdir(parents=True, exist_ok=True)

        save_kwargs = {
            "dpi": dpi,
            "bbox_inches": "tight",
            "facecolor": "white",
            **kwargs
        }

        if format == "html":
            img_b64 = self.to_base64(format="png", dpi=dpi)
            path.write_text(
                f"<!DOCTYPE html>\n<html><head><title>{self.title}</title></head>\n"
                f'<body><img src="data:image/png;base64,{img_b64}" alt="{self.title}"></body></html>'
            )
        else:
            self.fig.savefig(path, format=format, **save_kwargs)

        return path

    def to_base64(self, format: str = "png", dpi: int = 150) -> str:
        """Encode the figure as a base64 string for embedding."""
        buf = io.BytesIO()
        self.fig.savefig(buf, format=format, dpi=dpi, bbox_inches="tight")
        return base64.b64encode(buf.getvalue()).decode()

    def close(self):
        """Close the figure to free memory."""
        plt.close(self.fig)
