"""Tests for the differential abundance report."""

import pandas as pd
import pytest

from cytoabundance.config import ReportConfig
from cytoabundance.core.experiment import Experiment, FeatureColumn
from cytoabundance.report.differential_abundance import (
    close_report,
    iter_bundles,
    report_differential_abundance,
    report_feature,
)
from cytoabundance.stats.abundance import MissingEffectSizeError, compute_frequencies
from cytoabundance.viz.plots import PlotBundle

from conftest import CELL_SUBSETS, FEATURES, SAMPLE_FEATURES, SAMPLES


@pytest.fixture
def report(experiment):
    report = report_differential_abundance(experiment)
    yield report
    close_report(report)


class TestReportDifferentialAbundance:
    """Tests for report_differential_abundance()."""

    def test_levels_and_features(self, report):
        assert list(report) == ["Assignment"]
        assert set(report["Assignment"]) == {"Timepoint", "Patient"}

    def test_feature_without_results_is_none(self, report):
        assert report["Assignment"]["Patient"] is None

    def test_categories(self, report):
        feature_report = report["Assignment"]["Timepoint"]
        assert list(feature_report) == [
            "analysis_results", "volcano", "box_plots", "bar_plots", "line_plots",
        ]
        for category in ("box_plots", "bar_plots", "line_plots"):
            assert set(feature_report[category]) == set(CELL_SUBSETS)

    def test_analysis_results_table(self, report):
        bundle = report["Assignment"]["Timepoint"]["analysis_results"]
        assert bundle.figure is None
        assert bundle.data.columns[0] == "CellSubset"
        assert list(bundle.data["CellSubset"]) == ["B cells", "T cells", "NK cells"]

    def test_volcano_axes(self, report):
        volcano = report["Assignment"]["Timepoint"]["volcano"]
        ax = volcano.figure.fig.axes[0]
        assert ax.get_xlabel() == "logFC"
        assert ax.get_ylabel() == "negLog10Fdr"
        assert "negLog10Fdr" in volcano.data.columns

    def test_titles_carry_fdr(self, report):
        feature_report = report["Assignment"]["Timepoint"]
        titles = {
            subset: bundle.figure.title
            for subset, bundle in feature_report["box_plots"].items()
        }
        assert titles == {
            "B cells": "B cells (FDR < 0.001)",
            "T cells": "T cells (FDR = 0.020)",
            "NK cells": "NK cells (FDR = 0.50)",
        }
        bar_title = feature_report["bar_plots"]["T cells"].figure.fig.axes[0].get_title()
        assert bar_title == "T cells (FDR = 0.020)"

    def test_box_plot_uses_feature_name(self, report):
        box = report["Assignment"]["Timepoint"]["box_plots"]["B cells"]
        assert box.figure.fig.axes[0].get_xlabel() == "Timepoint"
        assert set(box.data["CellSubset"]) == {"B cells"}

    def test_bar_plot_samples_ascending(self, report):
        bar = report["Assignment"]["Timepoint"]["bar_plots"]["B cells"]
        labels = [t.get_text() for t in bar.figure.fig.axes[0].get_xticklabels()]
        # B cell frequencies: s1 .10, s5 .12, s3 .15, s4 .25, s6 .28, s2 .30
        assert labels == ["P1_D0", "P3_D0", "P2_D0", "P2_D7", "P3_D7", "P1_D7"]

    def test_bar_plot_samples_sharing_a_name(self, analysis_path):
        samples = SAMPLES.assign(Name=["A", "A", "B", "C", "D", "E"])
        experiment = Experiment(
            samples=samples,
            sample_features=SAMPLE_FEATURES.copy(),
            features=FEATURES.copy(),
            analysis_path=analysis_path,
        )

        report = report_differential_abundance(experiment)

        ax = report["Assignment"]["Timepoint"]["bar_plots"]["B cells"].figure.fig.axes[0]
        assert len(ax.patches) == 6
        labels = [t.get_text() for t in ax.get_xticklabels()]
        assert labels == ["A", "D", "B", "C", "E", "A"]
        close_report(report)

    def test_line_plot_data_and_size(self, report):
        feature_report = report["Assignment"]["Timepoint"]
        line = feature_report["line_plots"]["B cells"]
        box = feature_report["box_plots"]["B cells"]

        assert list(line.data.columns) == ["Patient", "D0", "D7"]
        assert line.data["D7"].tolist() == pytest.approx([0.30, 0.25, 0.28])
        assert (line.width, line.height) == (box.width, box.height)

    def test_no_line_plots_without_group_feature(self, experiment, analysis_path):
        daa = pd.read_pickle(analysis_path / "differential_abundance_analysis.pkl")
        daa["group_feature_label"] = None
        pd.to_pickle(daa, analysis_path / "differential_abundance_analysis.pkl")

        report = report_differential_abundance(experiment, ReportConfig(style="notebook"))

        assert "line_plots" not in report["Assignment"]["Timepoint"]
        close_report(report)

    def test_missing_artifacts(self, tmp_path):
        experiment = Experiment(
            samples=pd.DataFrame({"SampleId": [], "Name": []}),
            sample_features=pd.DataFrame({"SampleId": []}),
            features=pd.DataFrame({"FeatureId": [], "FeatureName": []}),
            analysis_path=tmp_path,
        )
        with pytest.raises(FileNotFoundError, match="unable to find"):
            report_differential_abundance(experiment)


class TestReportFeature:

    def test_missing_effect_size(self, experiment, cell_counts, top_tags):
        figure_data = compute_frequencies(cell_counts, experiment)
        with pytest.raises(MissingEffectSizeError):
            report_feature(
                figure_data, top_tags.drop(columns=["logFC"]), FeatureColumn("1", "Timepoint")
            )

    def test_max_log_fc(self, experiment, cell_counts, top_tags):
        figure_data = compute_frequencies(cell_counts, experiment)
        top_tags = top_tags.drop(columns=["logFC"]).assign(maxLogFc=[1.0, 2.0, 0.5])

        feature_report = report_feature(figure_data, top_tags, FeatureColumn("1", "Timepoint"))

        assert feature_report["volcano"].figure.fig.axes[0].get_xlabel() == "maxLogFc"
        assert "line_plots" not in feature_report

    def test_iter_bundles(self, report):
        bundles = list(iter_bundles(report["Assignment"]["Timepoint"]))
        assert len(bundles) == 2 + 3 * len(CELL_SUBSETS)
        assert all(isinstance(bundle, PlotBundle) for _, _, bundle in bundles)
        assert bundles[0][:2] == ("analysis_results", "analysis_results")
