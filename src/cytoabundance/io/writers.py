"""
Writers for preprocessed events and report bundles.

Feature reports are written one directory per category:

    <output_dir>/
        manifest.json
        analysis_results/analysis_results.csv
        volcano/volcano.png, volcano/volcano.csv
        box_plots/B_cells.png, box_plots/B_cells.csv
        bar_plots/...
        line_plots/...

Every bundle's table is exported as CSV next to its figure; table-only
bundles produce just the CSV. manifest.json lists each written entry with
its title and size and is replaced atomically once all files are written.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Union

import pandas as pd

from cytoabundance.core.sample import Sample
from cytoabundance.utils.fileio import atomic_write_json

__all__ = [
    'MANIFEST_FILENAME',
    'safe_filename',
    'write_events_csv',
    'write_feature_report',
    'write_report',
]

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    """File stem for a cell subset or feature name."""
    stem = _UNSAFE.sub("_", str(name)).strip("._")
    return stem or "unnamed"


def write_events_csv(sample: Sample, path: Union[str, Path]) -> Path:
    """Write a sample's events (one row per event, one column per channel)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sample.exprs.to_csv(path, index=False)
    logger.info(f"Wrote {sample.n_events} events x {sample.n_parameters} channels to {path}")
    return path


def write_feature_report(
    feature_report: dict,
    output_dir: Union[str, Path],
    format: str = "png",
    dpi: int = 300,
) -> Path:
    """
    Save every figure and table of a feature report.

    Args:
        feature_report: Category -> bundle (or name -> bundle), as built by
            report_feature.
        output_dir: Destination directory, created if needed.
        format: Figure format (png, pdf, svg or html).
        dpi: Resolution for raster formats.

    Returns:
        Path to the written manifest.
    """
    from cytoabundance.report.differential_abundance import iter_bundles

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    entries = []
    used = set()
    for category, name, bundle in iter_bundles(feature_report):
        category_dir = output_dir / category
        category_dir.mkdir(exist_ok=True)

        stem = safe_filename(name)
        suffix = 2
        while (category, stem) in used:
            stem = f"{safe_filename(name)}_{suffix}"
            suffix += 1
        used.add((category, stem))

        entry = {
            "category": category,
            "name": str(name),
            "width": bundle.width,
            "height": bundle.height,
            "data": None,
            "figure": None,
            "title": None,
        }

        if isinstance(bundle.data, pd.DataFrame):
            data_path = category_dir / f"{stem}.csv"
            bundle.data.to_csv(data_path, index=False)
            entry["data"] = str(data_path.relative_to(output_dir))

        if bundle.figure is not None:
            bundle.figure.fig.set_size_inches(bundle.width, bundle.height)
            figure_path = bundle.figure.save(category_dir / f"{stem}.{format}", format=format, dpi=dpi)
            entry["figure"] = str(Path(figure_path).relative_to(output_dir))
            entry["title"] = bundle.figure.title

        entries.append(entry)

    manifest_path = output_dir / MANIFEST_FILENAME
    atomic_write_json(manifest_path, {"format": format, "dpi": dpi, "entries": entries})
    logger.info(f"Wrote {len(entries)} report entries to {output_dir}")
    return manifest_path


def write_report(
    report: dict,
    output_dir: Union[str, Path],
    format: str = "png",
    dpi: int = 300,
) -> list[Path]:
    """
    Save a full report as ``<output_dir>/<level>/<feature>/``.

    Features without results are skipped.

    Returns:
        Paths to the written manifests.
    """
    output_dir = Path(output_dir)
    manifests = []
    for level, level_report in report.items():
        for feature_name, feature_report in level_report.items():
            if feature_report is None:
                logger.debug(f"Skipping {feature_name} at {level}: no results")
                continue
            feature_dir = output_dir / safe_filename(level) / safe_filename(feature_name)
            manifests.append(write_feature_report(feature_report, feature_dir, format=format, dpi=dpi))
    return manifests
