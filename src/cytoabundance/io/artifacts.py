"""
Loaders for precomputed analysis artifacts.

Clustering and differential abundance testing run upstream; the report reads
their results from the experiment's analysis directory:

    combine_aggregate_statistics.pkl     cell counts per sample, level, subset
    differential_abundance_analysis.pkl  per-level, per-feature test results

Both are pandas pickles. A missing file aborts the report.

Aggregate statistics layout (long table, or a mapping level -> table):

    SampleId  AnalysisLevel  CellSubset  N
    s1        Assignment     B cells     1520
    s1        Assignment     T cells     8110

Differential abundance layout:

    {
        "group_feature_label": "feature_2" or None,
        "differential_abundance_analysis": {
            "Assignment": {"feature_1": {"table": <DataFrame indexed by subset>}},
        },
    }
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import pandas as pd

from cytoabundance.core.experiment import ANALYSIS_LEVEL, CELL_COUNT, CELL_SUBSET, SAMPLE_ID

__all__ = [
    'AGGREGATE_STATISTICS_FILENAME',
    'DIFFERENTIAL_ABUNDANCE_FILENAME',
    'AggregateStatistics',
    'DifferentialAbundanceAnalysis',
    'load_aggregate_statistics',
    'load_differential_abundance_analysis',
]

logger = logging.getLogger(__name__)

AGGREGATE_STATISTICS_FILENAME = "combine_aggregate_statistics.pkl"
DIFFERENTIAL_ABUNDANCE_FILENAME = "differential_abundance_analysis.pkl"

CELL_COUNT_COLUMNS = [SAMPLE_ID, CELL_SUBSET, CELL_COUNT]


@dataclass(frozen=True)
class AggregateStatistics:
    """Cell counts per sample, analysis level and cell subset."""
    table: pd.DataFrame

    def __post_init__(self):
        required = CELL_COUNT_COLUMNS + [ANALYSIS_LEVEL]
        missing = [col for col in required if col not in self.table.columns]
        if missing:
            raise ValueError(f"Aggregate statistics missing columns: {missing}")

    @classmethod
    def from_object(cls, obj: Any) -> AggregateStatistics:
        """Build from a long DataFrame or a mapping of level -> count table."""
        if isinstance(obj, AggregateStatistics):
            return obj
        if isinstance(obj, pd.DataFrame):
            return cls(table=obj)
        if isinstance(obj, Mapping):
            frames = [
                table.assign(**{ANALYSIS_LEVEL: level})
                for level, table in obj.items()
            ]
            return cls(table=pd.concat(frames, ignore_index=True))
        raise TypeError(f"Cannot read aggregate statistics from {type(obj).__name__}")

    @property
    def levels(self) -> list[str]:
        return list(pd.unique(self.table[ANALYSIS_LEVEL]))

    def cell_counts(self, level: str) -> pd.DataFrame:
        """
        Cell counts for one analysis level.

        Returns:
            DataFrame with columns SampleId, CellSubset, N.

        Raises:
            KeyError: If the level is not present.
        """
        if level not in self.levels:
            raise KeyError(f"analysis level {level!r} not found in aggregate statistics")
        mask = self.table[ANALYSIS_LEVEL] == level
        return self.table.loc[mask, CELL_COUNT_COLUMNS].reset_index(drop=True)


@dataclass(frozen=True)
class DifferentialAbundanceAnalysis:
    """
    Differential abundance test results.

    Attributes:
        results: level -> feature label (``feature_<id>``) -> results table
            indexed by cell subset, or None when no table was produced.
        group_feature_label: Label of the feature that pairs samples (e.g. the
            patient), or None.
    """
    results: dict[str, dict[str, Optional[pd.DataFrame]]] = field(default_factory=dict)
    group_feature_label: Optional[str] = None

    @classmethod
    def from_object(cls, obj: Any) -> DifferentialAbundanceAnalysis:
        if isinstance(obj, DifferentialAbundanceAnalysis):
            return obj
        if not isinstance(obj, Mapping):
            raise TypeError(
                f"Cannot read differential abundance analysis from {type(obj).__name__}"
            )

        results = {}
        for level, per_feature in (obj.get("differential_abundance_analysis") or {}).items():
            results[level] = {}
            for label, entry in (per_feature or {}).items():
                if isinstance(entry, Mapping):
                    entry = entry.get("table")
                results[level][label] = entry

        return cls(results=results, group_feature_label=obj.get("group_feature_label"))

    @property
    def levels(self) -> list[str]:
        return list(self.results)

    def top_tags(self, level: str, feature_label: str) -> Optional[pd.DataFrame]:
        """Results table for a feature at a level, or None if there is none."""
        return self.results.get(level, {}).get(feature_label)


def _require(path: Path) -> Path:
    if not path.exists():
        raise FileNotFoundError(f"unable to find {path}")
    return path


def load_aggregate_statistics(analysis_path: Union[str, Path]) -> AggregateStatistics:
    """
    Load combined aggregate statistics from an analysis directory.

    Raises:
        FileNotFoundError: If the artifact is missing.
    """
    path = _require(Path(analysis_path) / AGGREGATE_STATISTICS_FILENAME)
    logger.info(f"Loading aggregate statistics from {path}")
    return AggregateStatistics.from_object(pd.read_pickle(path))


def load_differential_abundance_analysis(
    analysis_path: Union[str, Path],
) -> DifferentialAbundanceAnalysis:
    """
    Load differential abundance results from an analysis directory.

    Raises:
        FileNotFoundError: If the artifact is missing.
    """
    path = _require(Path(analysis_path) / DIFFERENTIAL_ABUNDANCE_FILENAME)
    logger.info(f"Loading differential abundance analysis from {path}")
    return DifferentialAbundanceAnalysis.from_object(pd.read_pickle(path))
