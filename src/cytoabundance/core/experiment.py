"""
Experiment design: samples, sample features and their column labels.

An Experiment bundles everything the differential abundance report needs to
know about the study design:

    samples          SampleId, Name
    sample_features  SampleId, feature_<FeatureId>, feature_<FeatureId>, ...
    features         FeatureId, FeatureName

Design features (e.g. "Timepoint", "Patient", "Treatment") are stored as
columns of ``sample_features`` named ``feature_<FeatureId>``. FeatureColumn
resolves that label once per feature so report code never assembles column
names on the fly.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

__all__ = [
    'SAMPLE_ID',
    'SAMPLE_NAME',
    'CELL_SUBSET',
    'CELL_COUNT',
    'FREQUENCY',
    'ANALYSIS_LEVEL',
    'FEATURE_PREFIX',
    'FeatureColumn',
    'Experiment',
]

# Column names shared by the design tables, aggregate statistics and report data.
SAMPLE_ID = "SampleId"
SAMPLE_NAME = "SampleName"
CELL_SUBSET = "CellSubset"
CELL_COUNT = "N"
FREQUENCY = "Frequency"
ANALYSIS_LEVEL = "AnalysisLevel"
FEATURE_ID = "FeatureId"
FEATURE_NAME = "FeatureName"

FEATURE_PREFIX = "feature_"


@dataclass(frozen=True)
class FeatureColumn:
    """A design feature together with its column label in sample_features."""
    feature_id: str
    feature_name: str

    @property
    def label(self) -> str:
        return f"{FEATURE_PREFIX}{self.feature_id}"

    @staticmethod
    def id_from_label(label: str) -> str:
        """Strip the ``feature_`` prefix from a column label."""
        if label.startswith(FEATURE_PREFIX):
            return label[len(FEATURE_PREFIX):]
        return label


@dataclass(frozen=True)
class Experiment:
    """
    Read-only snapshot of an experiment's design.

    Attributes:
        samples: One row per sample with SampleId and Name.
        sample_features: SampleId plus one ``feature_<id>`` column per feature.
        features: FeatureId and FeatureName for each design feature.
        analysis_path: Directory holding precomputed analysis artifacts.
    """
    samples: pd.DataFrame
    sample_features: pd.DataFrame
    features: pd.DataFrame
    analysis_path: Path

    def __post_init__(self):
        for table_name, required in (
            ("samples", (SAMPLE_ID, "Name")),
            ("sample_features", (SAMPLE_ID,)),
            ("features", (FEATURE_ID, FEATURE_NAME)),
        ):
            table = getattr(self, table_name)
            missing = [col for col in required if col not in table.columns]
            if missing:
                raise ValueError(f"{table_name} is missing required columns: {missing}")
        object.__setattr__(self, "analysis_path", Path(self.analysis_path))

    def feature_columns(self) -> list[FeatureColumn]:
        """Design features in table order."""
        return [
            FeatureColumn(feature_id=str(row[FEATURE_ID]), feature_name=str(row[FEATURE_NAME]))
            for _, row in self.features.iterrows()
        ]

    def feature_by_label(self, label: str) -> Optional[FeatureColumn]:
        """Resolve a ``feature_<id>`` label to its FeatureColumn, or None."""
        feature_id = FeatureColumn.id_from_label(label)
        for feature in self.feature_columns():
            if feature.feature_id == feature_id:
                return feature
        return None
