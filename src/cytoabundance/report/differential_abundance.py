"""
Differential abundance report.

For every analysis level in the differential abundance results and every
design feature of the experiment, builds a feature report:

    analysis_results  table bundle of test results (CellSubset first, by FDR)
    volcano           effect size vs -log10(FDR), labelled by cell subset
    box_plots         {cell subset: Frequency by feature level}
    bar_plots         {cell subset: Frequency per sample, ascending}
    line_plots        {cell subset: median Frequency per group across levels}

line_plots is only present when the experiment has a group feature (e.g. the
patient) that spans several levels of the feature being reported. Features
without a results table are reported as None.

Example:
    >>> report = report_differential_abundance(experiment)
    >>> bundle = report["Assignment"]["Timepoint"]["box_plots"]["B cells"]
    >>> bundle.figure.save("b_cells.png")
    >>> close_report(report)
"""

from __future__ import annotations

import logging
from typing import Optional

import pandas as pd

from cytoabundance.config import ReportConfig
from cytoabundance.core.experiment import (
    CELL_SUBSET,
    FREQUENCY,
    SAMPLE_NAME,
    Experiment,
    FeatureColumn,
)
from cytoabundance.io.artifacts import (
    load_aggregate_statistics,
    load_differential_abundance_analysis,
)
from cytoabundance.stats.abundance import (
    NEG_LOG10_FDR,
    compute_frequencies,
    effect_size_column,
    export_differential_abundance,
    include_line_plots,
    median_frequency_by_group,
    pivot_frequency_by_group,
    prepare_top_tags,
)
from cytoabundance.viz.plots import (
    PlotBundle,
    plot_bar_plot,
    plot_box_plot,
    plot_line_plot,
    plot_scatter_plot,
)
from cytoabundance.viz.styles import Palette, configure_style, format_pvalue

__all__ = [
    'REPORT_CATEGORIES',
    'report_differential_abundance',
    'report_feature',
    'close_report',
    'iter_bundles',
]

logger = logging.getLogger(__name__)

REPORT_CATEGORIES = ("analysis_results", "volcano", "box_plots", "bar_plots", "line_plots")


def report_differential_abundance(
    experiment: Experiment,
    config: Optional[ReportConfig] = None,
) -> dict[str, dict[str, Optional[dict]]]:
    """
    Build plot bundles for every analysis level and design feature.

    Args:
        experiment: Experiment whose analysis_path holds the aggregate
            statistics and differential abundance artifacts.
        config: Plot style and title settings.

    Returns:
        analysis level -> feature name -> feature report (None when the
        feature has no results at that level).

    Raises:
        FileNotFoundError: If either artifact is missing.
        KeyError: If a results level has no cell counts.
        MissingEffectSizeError: If a results table has no effect size column.
    """
    config = config or ReportConfig()
    palette = configure_style(config.style, config.palette)

    aggregate_statistics = load_aggregate_statistics(experiment.analysis_path)
    daa = load_differential_abundance_analysis(experiment.analysis_path)

    group_feature_label = daa.group_feature_label
    group_feature = None
    if group_feature_label is not None:
        group_feature = experiment.feature_by_label(group_feature_label)
        if group_feature is None:
            logger.warning(
                f"Group feature {group_feature_label} is not a feature of the experiment"
            )

    features = experiment.feature_columns()
    report = {}
    for level in daa.levels:
        logger.info(f"Reporting differential abundance for {level} ({len(features)} features)")
        cell_counts = aggregate_statistics.cell_counts(level)
        figure_data = compute_frequencies(cell_counts, experiment)
        exported = export_differential_abundance(daa, experiment, level)

        level_report = {}
        for feature in features:
            top_tags = daa.top_tags(level, feature.label)
            if top_tags is None:
                logger.debug(f"No results for {feature.feature_name} at {level}")
                level_report[feature.feature_name] = None
                continue
            level_report[feature.feature_name] = report_feature(
                figure_data,
                top_tags,
                feature,
                exported_results=exported[feature.feature_name],
                group_feature_label=group_feature_label,
                group_feature_name=group_feature.feature_name if group_feature else None,
                palette=palette,
                fdr_label=config.fdr_label,
            )
        report[level] = level_report

    return report


def report_feature(
    figure_data: pd.DataFrame,
    top_tags: pd.DataFrame,
    feature: FeatureColumn,
    exported_results: Optional[pd.DataFrame] = None,
    group_feature_label: Optional[str] = None,
    group_feature_name: Optional[str] = None,
    palette: Optional[Palette] = None,
    fdr_label: str = "FDR",
) -> dict:
    """
    Feature report for one design feature at one analysis level.

    Args:
        figure_data: Frequencies joined with the design (compute_frequencies).
        top_tags: Results table indexed by cell subset.
        feature: The design feature being reported.
        exported_results: Export-ready results table; derived from top_tags
            when not given.
        group_feature_label: Column label of the pairing feature, if any.
        group_feature_name: Display name of the pairing feature.
        palette: Colors for all plots.
        fdr_label: Label used in figure titles.
    """
    label = feature.label
    results = prepare_top_tags(top_tags)
    with_lines = include_line_plots(figure_data, label, group_feature_label)
    logger.debug(
        f"{feature.feature_name}: {len(results)} cell subsets, line plots {'on' if with_lines else 'off'}"
    )

    if exported_results is None:
        exported_results = (
            results.drop(columns=[NEG_LOG10_FDR])
            .sort_values(["FDR", CELL_SUBSET], kind="mergesort")
            .reset_index(drop=True)
        )

    feature_report = {
        "analysis_results": PlotBundle(figure=None, data=exported_results),
        "volcano": plot_scatter_plot(
            results,
            x=effect_size_column(results),
            y=NEG_LOG10_FDR,
            label=CELL_SUBSET,
            title=feature.feature_name,
            palette=palette,
        ),
        "box_plots": {},
        "bar_plots": {},
    }
    if with_lines:
        feature_report["line_plots"] = {}

    for _, row in results.iterrows():
        cell_subset = row[CELL_SUBSET]
        cell_subset_data = figure_data[figure_data[CELL_SUBSET].astype(str) == cell_subset]
        title = f"{cell_subset} ({format_pvalue(row['FDR'], fdr_label)})"

        box_plot = plot_box_plot(
            cell_subset_data,
            x=label,
            y=FREQUENCY,
            title=title,
            xlabel=feature.feature_name,
            palette=palette,
        )
        feature_report["box_plots"][cell_subset] = box_plot

        feature_report["bar_plots"][cell_subset] = plot_bar_plot(
            cell_subset_data,
            x=SAMPLE_NAME,
            y=FREQUENCY,
            fill=label,
            ascending=True,
            title=title,
            palette=palette,
        )

        if with_lines:
            line_data = median_frequency_by_group(cell_subset_data, label, group_feature_label)
            feature_report["line_plots"][cell_subset] = plot_line_plot(
                line_data,
                x=label,
                y=FREQUENCY,
                group=group_feature_label,
                title=title,
                xlabel=feature.feature_name,
                palette=palette,
                export_data=pivot_frequency_by_group(
                    line_data, label, group_feature_label, group_feature_name
                ),
                width=box_plot.width,
                height=box_plot.height,
            )

    return feature_report


def iter_bundles(feature_report: dict):
    """Yield (category, name, bundle) for every bundle in a feature report."""
    for category in REPORT_CATEGORIES:
        entry = feature_report.get(category)
        if entry is None:
            continue
        if isinstance(entry, PlotBundle):
            yield category, category, entry
        else:
            for name, bundle in entry.items():
                yield category, name, bundle


def close_report(report: dict) -> None:
    """Release every figure held by a report from report_differential_abundance."""
    for level_report in report.values():
        for feature_report in level_report.values():
            if feature_report is None:
                continue
            for _, _, bundle in iter_bundles(feature_report):
                bundle.close()
