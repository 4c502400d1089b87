"""
Pytest configuration and shared fixtures.

Provides synthetic FCS headers, a minimal FCS 3.0 writer for end-to-end
import tests, and a small two-timepoint experiment with pickled analysis
artifacts.
"""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
from pathlib import Path

from cytoabundance.core.experiment import Experiment
from cytoabundance.core.sample import InstrumentSource, Sample
from cytoabundance.io.artifacts import (
    AGGREGATE_STATISTICS_FILENAME,
    DIFFERENTIAL_ABUNDANCE_FILENAME,
)


@pytest.fixture(autouse=True)
def close_figures():
    """Release matplotlib figures created by a test."""
    yield
    plt.close("all")


def write_fcs(path, events, names, descs=None, keywords=None):
    """
    Write a minimal FCS 3.0 file with float32 little-endian list-mode data.

    Args:
        path: Destination file.
        events: Array of shape (n_events, n_parameters).
        names: $PnN values.
        descs: $PnS values; None or "" entries are omitted.
        keywords: Extra TEXT keywords (e.g. $SPILLOVER).

    Returns:
        The written path.
    """
    events = np.asarray(events, dtype=np.float64)
    n_events, n_parameters = events.shape
    descs = descs or [None] * n_parameters

    text_keywords = {
        "$BYTEORD": "1,2,3,4",
        "$DATATYPE": "F",
        "$MODE": "L",
        "$NEXTDATA": "0",
        "$PAR": str(n_parameters),
        "$TOT": str(n_events),
        "$BEGINANALYSIS": "0",
        "$ENDANALYSIS": "0",
        "$BEGINSTEXT": "0",
        "$ENDSTEXT": "0",
    }
    for i, name in enumerate(names, start=1):
        text_keywords[f"$P{i}N"] = name
        text_keywords[f"$P{i}B"] = "32"
        text_keywords[f"$P{i}E"] = "0,0"
        text_keywords[f"$P{i}R"] = "262144"
        if descs[i - 1]:
            text_keywords[f"$P{i}S"] = descs[i - 1]
    text_keywords.update(keywords or {})

    data = events.astype("<f4").tobytes()
    text_start = 58

    def build_text(begin, end):
        items = dict(text_keywords)
        items["$BEGINDATA"] = f"{begin:010d}"
        items["$ENDDATA"] = f"{end:010d}"
        return "/" + "/".join(f"{k}/{v}" for k, v in items.items()) + "/"

    text_length = len(build_text(0, 0))
    text_end = text_start + text_length - 1
    data_start = text_end + 1
    data_end = data_start + len(data) - 1
    text = build_text(data_start, data_end)

    header = "FCS3.0    " + "".join(
        f"{value:>8}" for value in (text_start, text_end, data_start, data_end, 0, 0)
    )

    path = Path(path)
    with open(path, "wb") as f:
        f.write(header.encode("ascii"))
        f.write(text.encode("ascii"))
        f.write(data)
    return path


FLOW_NAMES = ["FSC-A", "SSC-A", "FL1-A", "FL2-A", "Time"]
FLOW_DESCS = [None, None, "CD3 FITC", "CD4", None]
FLOW_SPILLOVER = np.array([[1.0, 0.1], [0.05, 1.0]])

MASS_NAMES = ["Time", "Ir191Di", "Ir193Di", "Nd142Di", "Y89Di"]
MASS_DESCS = [None, "DNA1", "DNA2", "142Nd_CD19", "89Y_CD45"]


@pytest.fixture
def flow_events():
    """True (uncompensated) flow events: scatter, two fluorescence channels, time."""
    rng = np.random.RandomState(42)
    n = 200
    return np.column_stack([
        rng.uniform(1e4, 2e5, n),
        rng.uniform(1e4, 2e5, n),
        rng.uniform(100, 1e4, n),
        rng.uniform(100, 1e4, n),
        np.arange(n, dtype=float),
    ])


@pytest.fixture
def flow_fcs(tmp_path, flow_events):
    """Flow cytometry FCS file whose fluorescence channels carry spillover."""
    observed = flow_events.copy()
    observed[:, 2:4] = flow_events[:, 2:4] @ FLOW_SPILLOVER
    spillover = "2,FL1-A,FL2-A," + ",".join(str(v) for v in FLOW_SPILLOVER.ravel())
    return write_fcs(
        tmp_path / "flow.fcs", observed, FLOW_NAMES, FLOW_DESCS,
        keywords={"$SPILLOVER": spillover},
    )


@pytest.fixture
def mass_events():
    rng = np.random.RandomState(7)
    n = 150
    return np.column_stack([
        np.arange(n, dtype=float),
        rng.uniform(0, 500, (n, 4)),
    ])


@pytest.fixture
def mass_fcs(tmp_path, mass_events):
    """Mass cytometry FCS file with isotope-tagged descriptions."""
    return write_fcs(tmp_path / "mass.fcs", mass_events, MASS_NAMES, MASS_DESCS)


@pytest.fixture
def mass_sample():
    """In-memory mass cytometry sample."""
    exprs = pd.DataFrame(
        [[0.0, 10.0, 12.0, 5.0, 0.0], [1.0, 50.0, 48.0, 500.0, 25.0]],
        columns=["Time", "DNA1", "DNA2", "CD19", "CD45"],
    )
    return Sample(
        exprs=exprs,
        parameter_name=list(MASS_NAMES),
        parameter_desc=["", "DNA1", "DNA2", "CD19", "CD45"],
        source=InstrumentSource.MASS,
    )


def mass_header(descs):
    """TEXT keywords for a mass cytometry panel with the given $PnS values."""
    header = {"$PAR": str(len(descs))}
    for i, desc in enumerate(descs, start=1):
        header[f"$P{i}N"] = f"Ch{i}Di"
        if desc is not None:
            header[f"$P{i}S"] = desc
    return header


# Timepoint (feature 1) x Patient (feature 2), two samples per patient.
SAMPLES = pd.DataFrame({
    "SampleId": ["s1", "s2", "s3", "s4", "s5", "s6"],
    "Name": ["P1_D0", "P1_D7", "P2_D0", "P2_D7", "P3_D0", "P3_D7"],
})
SAMPLE_FEATURES = pd.DataFrame({
    "SampleId": ["s1", "s2", "s3", "s4", "s5", "s6"],
    "feature_1": ["D0", "D7", "D0", "D7", "D0", "D7"],
    "feature_2": ["P1", "P1", "P2", "P2", "P3", "P3"],
})
FEATURES = pd.DataFrame({
    "FeatureId": [1, 2],
    "FeatureName": ["Timepoint", "Patient"],
})
CELL_SUBSETS = ["B cells", "T cells", "NK cells"]


def make_cell_counts():
    """Cell counts per sample and subset for the Assignment level."""
    counts = {
        "s1": [100, 800, 100],
        "s2": [300, 600, 100],
        "s3": [150, 700, 150],
        "s4": [250, 650, 100],
        "s5": [120, 780, 100],
        "s6": [280, 620, 100],
    }
    rows = [
        {"SampleId": sample_id, "AnalysisLevel": "Assignment", "CellSubset": subset, "N": n}
        for sample_id, values in counts.items()
        for subset, n in zip(CELL_SUBSETS, values)
    ]
    return pd.DataFrame(rows)


def make_top_tags():
    """Differential abundance results for Timepoint, indexed by cell subset."""
    return pd.DataFrame(
        {
            "logFC": [1.2, -0.3, 0.05],
            "logCPM": [17.1, 19.4, 16.8],
            "PValue": [0.0001, 0.01, 0.4],
            "FDR": [0.0004, 0.02, 0.5],
        },
        index=pd.Index(CELL_SUBSETS),
    )


@pytest.fixture
def cell_counts():
    return make_cell_counts()


@pytest.fixture
def top_tags():
    return make_top_tags()


@pytest.fixture
def analysis_path(tmp_path):
    """Analysis directory with both pickled artifacts."""
    path = tmp_path / "analysis"
    path.mkdir()
    make_cell_counts().to_pickle(path / AGGREGATE_STATISTICS_FILENAME)
    pd.to_pickle(
        {
            "group_feature_label": "feature_2",
            "differential_abundance_analysis": {
                "Assignment": {"feature_1": {"table": make_top_tags()}},
            },
        },
        path / DIFFERENTIAL_ABUNDANCE_FILENAME,
    )
    return path


@pytest.fixture
def experiment(analysis_path):
    return Experiment(
        samples=SAMPLES.copy(),
        sample_features=SAMPLE_FEATURES.copy(),
        features=FEATURES.copy(),
        analysis_path=analysis_path,
    )
