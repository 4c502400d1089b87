"""
Cell-subset abundance tables for differential abundance reporting.

Joins per-sample cell counts with the experiment design, turns counts into
per-sample frequencies, and shapes differential test results for export and
plotting.

Biological Context:
    Clustering assigns each cell to a subset; a sample's composition is the
    fraction of its cells in each subset. Comparing these fractions across
    design features (timepoint, treatment, response) is what differential
    abundance analysis tests. When the same patient is sampled several times,
    the patient is a *group feature*: per-patient trajectories (line plots)
    are only informative if patients actually span several levels of the
    feature being examined.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pandas as pd

from cytoabundance.core.experiment import (
    CELL_COUNT,
    CELL_SUBSET,
    FREQUENCY,
    SAMPLE_ID,
    SAMPLE_NAME,
    Experiment,
)

__all__ = [
    'EFFECT_SIZE_COLUMNS',
    'NEG_LOG10_FDR',
    'MissingEffectSizeError',
    'compute_frequencies',
    'include_line_plots',
    'prepare_top_tags',
    'effect_size_column',
    'export_differential_abundance',
    'median_frequency_by_group',
    'pivot_frequency_by_group',
]

logger = logging.getLogger(__name__)

# Effect size columns in order of preference: edgeR-style single contrast, then
# the largest fold change of a multi-level test.
EFFECT_SIZE_COLUMNS = ("logFC", "maxLogFc")
NEG_LOG10_FDR = "negLog10Fdr"


class MissingEffectSizeError(KeyError):
    """Raised when a results table has none of the expected effect size columns."""
    pass


def compute_frequencies(cell_counts: pd.DataFrame, experiment: Experiment) -> pd.DataFrame:
    """
    Join cell counts with the design and compute per-sample frequencies.

    Args:
        cell_counts: SampleId, CellSubset, N for one analysis level.
        experiment: Experiment providing sample_features and samples.

    Returns:
        One row per (sample, cell subset) with every sample feature column,
        SampleName, and Frequency = N / total N of the sample. Frequencies of
        a sample sum to 1; a sample with no cells gets NaN frequencies.
    """
    figure_data = (
        cell_counts
        .merge(experiment.sample_features, on=SAMPLE_ID, how="left")
        .merge(experiment.samples, on=SAMPLE_ID, how="left")
        .rename(columns={"Name": SAMPLE_NAME})
    )

    totals = figure_data.groupby(SAMPLE_ID)[CELL_COUNT].transform("sum")
    empty = sorted(figure_data.loc[totals == 0, SAMPLE_ID].unique())
    if empty:
        logger.warning(f"Samples with no cells, frequencies are undefined: {empty}")
    figure_data[FREQUENCY] = figure_data[CELL_COUNT] / totals
    return figure_data


def include_line_plots(
    figure_data: pd.DataFrame,
    feature_label: str,
    group_feature_label: Optional[str],
) -> bool:
    """
    Whether per-group line plots are informative for a feature.

    True iff a group feature exists and the number of distinct
    (feature, group) pairs exceeds the number of distinct group values, i.e.
    at least one group spans more than one level of the feature.
    """
    if group_feature_label is None or feature_label == group_feature_label:
        return False

    n_pairs = len(figure_data[[feature_label, group_feature_label]].drop_duplicates())
    n_groups = figure_data[group_feature_label].nunique(dropna=False)
    return n_pairs > n_groups


def prepare_top_tags(top_tags: pd.DataFrame) -> pd.DataFrame:
    """
    Results table with the cell subset as a column and -log10(FDR) added.

    The input is indexed by cell subset, as produced by the upstream test.
    """
    table = top_tags.copy()
    if CELL_SUBSET not in table.columns:
        table = table.rename_axis(CELL_SUBSET).reset_index()
    table[CELL_SUBSET] = table[CELL_SUBSET].astype(str)
    with np.errstate(divide="ignore"):
        table[NEG_LOG10_FDR] = -np.log10(table["FDR"].astype(float))
    return table


def effect_size_column(table: pd.DataFrame) -> str:
    """
    Name of the effect size column to plot against significance.

    Raises:
        MissingEffectSizeError: If neither logFC nor maxLogFc is present.
    """
    for column in EFFECT_SIZE_COLUMNS:
        if column in table.columns:
            return column
    raise MissingEffectSizeError(
        f"results table does not include {' or '.join(EFFECT_SIZE_COLUMNS)}"
    )


def _export_table(top_tags: pd.DataFrame) -> pd.DataFrame:
    table = prepare_top_tags(top_tags).drop(columns=[NEG_LOG10_FDR])
    table = table.sort_values(["FDR", CELL_SUBSET], kind="mergesort").reset_index(drop=True)
    columns = [CELL_SUBSET] + [c for c in table.columns if c != CELL_SUBSET]
    return table[columns]


def export_differential_abundance(
    daa,
    experiment: Experiment,
    level: str,
) -> dict[str, Optional[pd.DataFrame]]:
    """
    Export-ready differential abundance results for one analysis level.

    Args:
        daa: DifferentialAbundanceAnalysis.
        experiment: Experiment whose features name the results.
        level: Analysis level.

    Returns:
        Feature name -> table with CellSubset first, sorted by FDR (None when
        the feature has no results).
    """
    exported = {}
    for feature in experiment.feature_columns():
        top_tags = daa.top_tags(level, feature.label)
        exported[feature.feature_name] = None if top_tags is None else _export_table(top_tags)
    return exported


def median_frequency_by_group(
    cell_subset_data: pd.DataFrame,
    feature_label: str,
    group_feature_label: str,
) -> pd.DataFrame:
    """Median Frequency per (group, feature level), sorted by group then level."""
    return (
        cell_subset_data
        .groupby([group_feature_label, feature_label], sort=True)[FREQUENCY]
        .median()
        .reset_index()
    )


def pivot_frequency_by_group(
    line_data: pd.DataFrame,
    feature_label: str,
    group_feature_label: str,
    group_feature_name: Optional[str] = None,
) -> pd.DataFrame:
    """
    Wide table of median frequencies: one row per group, one column per level.

    The first column is named after the group feature when its name is known.
    """
    wide = line_data.pivot(
        index=group_feature_label, columns=feature_label, values=FREQUENCY
    ).reset_index()
    wide.columns.name = None
    wide.columns = [str(c) if i > 0 else c for i, c in enumerate(wide.columns)]
    if group_feature_name is not None:
        wide = wide.rename(columns={group_feature_label: group_feature_name})
    return wide
