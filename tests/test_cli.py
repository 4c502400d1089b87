"""Tests for the cytoabundance command line."""

import pandas as pd
import pytest

from cytoabundance import __version__
from cytoabundance.cli import main


class TestMain:

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "channels" in capsys.readouterr().out


class TestChannelsCommand:

    def test_mass_file(self, mass_fcs, capsys):
        assert main(["channels", str(mass_fcs)]) == 0

        out = capsys.readouterr().out
        assert "Instrument: mass_cytometry" in out
        assert "CD19" in out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["channels", str(tmp_path / "missing.fcs")]) == 1
        assert "FCS file not found" in capsys.readouterr().err

    def test_unidentified_instrument_reported_on_stderr(self, tmp_path, capsys):
        from conftest import write_fcs
        import numpy as np

        path = write_fcs(tmp_path / "beads.fcs", np.ones((2, 2)), ["FL1-A", "FL2-A"])

        assert main(["channels", str(path)]) == 1
        captured = capsys.readouterr()
        assert "cannot identify FCS file source" in captured.err
        assert "Instrument: unknown" not in captured.out
        assert "FL1-A" in captured.out


class TestPreprocessCommand:

    def test_mass_file(self, mass_fcs, mass_events, tmp_path):
        output = tmp_path / "mass.csv"

        assert main(["preprocess", str(mass_fcs), "-o", str(output), "--cofactor", "5"]) == 0

        events = pd.read_csv(output)
        assert list(events.columns) == ["Time", "DNA1", "DNA2", "CD19", "CD45"]
        assert events["CD19"].max() < 10
        assert events["Time"].tolist() == pytest.approx(mass_events[:, 0].tolist())

    def test_flow_file(self, flow_fcs, tmp_path):
        output = tmp_path / "flow.csv"

        assert main(["preprocess", str(flow_fcs), "-o", str(output)]) == 0

        events = pd.read_csv(output)
        assert events["CD4"].max() <= 1.0

    def test_config_cofactor(self, mass_fcs, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("preprocess:\n  cofactor: 1000\n")
        default = tmp_path / "default.csv"
        configured = tmp_path / "configured.csv"

        assert main(["preprocess", str(mass_fcs), "-o", str(default)]) == 0
        assert main(["preprocess", str(mass_fcs), "-o", str(configured), "--config", str(config)]) == 0

        assert pd.read_csv(configured)["CD19"].max() < pd.read_csv(default)["CD19"].max()

    def test_invalid_config(self, mass_fcs, tmp_path, capsys):
        config = tmp_path / "config.yaml"
        config.write_text("preprocess:\n  cofactor: -1\n")

        code = main(["preprocess", str(mass_fcs), "-o", str(tmp_path / "x.csv"), "-c", str(config)])

        assert code == 1
        assert "Config file error" in capsys.readouterr().err

    def test_unidentified_instrument(self, tmp_path, capsys):
        from conftest import write_fcs
        import numpy as np

        path = write_fcs(tmp_path / "beads.fcs", np.ones((2, 2)), ["FL1-A", "FL2-A"])

        assert main(["preprocess", str(path), "-o", str(tmp_path / "x.csv")]) == 1
        assert "cannot identify FCS file source" in capsys.readouterr().err
