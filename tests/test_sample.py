"""Tests for the Sample model, instrument classification and panel digests."""

import pandas as pd
import pytest

from cytoabundance.core.sample import (
    InstrumentIdentificationError,
    InstrumentSource,
    Sample,
    calculate_fcs_digest,
    classify_instrument,
    is_sample,
)
from cytoabundance.stats.preprocessing import ArcsinhTransform


class TestClassifyInstrument:
    """Tests for classify_instrument()."""

    def test_flow(self):
        assert classify_instrument(["FSC-A", "SSC-A", "FL1-A"]) is InstrumentSource.FLOW

    def test_mass(self):
        assert classify_instrument(["Ir191Di", "Ir193Di", "Nd142Di"]) is InstrumentSource.MASS

    def test_substring_match(self):
        assert classify_instrument(["FSC-H", "SSC-W"]) is InstrumentSource.FLOW
        assert classify_instrument(["(Ir191)Di", "(Ir193)Di"]) is InstrumentSource.MASS

    def test_both_raises(self):
        with pytest.raises(InstrumentIdentificationError, match="both flow and mass"):
            classify_instrument(["FSC-A", "SSC-A", "Ir191Di", "Ir193Di"])

    def test_neither_raises(self):
        with pytest.raises(InstrumentIdentificationError, match="cannot identify"):
            classify_instrument(["FL1-A", "FL2-A"])

    def test_partial_signature_is_not_enough(self):
        with pytest.raises(InstrumentIdentificationError):
            classify_instrument(["FSC-A", "Ir191Di"])

    def test_source_values(self):
        assert InstrumentSource.FLOW.value == "flow_cytometry"
        assert InstrumentSource.MASS.value == "mass_cytometry"
        assert InstrumentSource("mass_cytometry") is InstrumentSource.MASS


class TestSample:

    def test_properties(self, mass_sample):
        assert mass_sample.n_events == 2
        assert mass_sample.n_parameters == 5
        assert "mass_cytometry" in repr(mass_sample)

    def test_duplicate_columns_rejected(self):
        exprs = pd.DataFrame([[1.0, 2.0]], columns=["CD3", "CD3"])
        with pytest.raises(ValueError, match="unique"):
            Sample(exprs, ["FL1-A", "FL2-A"], ["CD3", "CD3"], InstrumentSource.FLOW)

    def test_length_mismatch_rejected(self):
        exprs = pd.DataFrame([[1.0, 2.0]], columns=["a", "b"])
        with pytest.raises(ValueError):
            Sample(exprs, ["a", "b"], ["a"], InstrumentSource.FLOW)
        with pytest.raises(ValueError):
            Sample(exprs, ["a"], ["a"], InstrumentSource.FLOW)

    def test_parameter_range(self, mass_sample):
        sample = Sample(
            mass_sample.exprs, mass_sample.parameter_name, mass_sample.parameter_desc,
            mass_sample.source, keywords={"$P2R": "1024", "$P3R": "n/a"},
        )
        assert sample.parameter_range(1) == 1024.0
        assert sample.parameter_range(2) is None
        assert sample.parameter_range(0) is None

    def test_preprocess_dispatches_on_source(self, mass_sample):
        transformed = InstrumentSource.MASS.preprocess(mass_sample, cofactor=5.0)
        assert transformed.exprs.loc[1, "CD19"] == pytest.approx(5.2983, abs=1e-3)
        assert transformed.exprs.loc[1, "Time"] == 1.0


class TestIsSample:

    def test_sample_instance(self, mass_sample):
        assert is_sample(mass_sample)

    def test_mapping_with_all_fields(self, mass_sample):
        mapping = {
            "exprs": mass_sample.exprs,
            "parameter_name": mass_sample.parameter_name,
            "parameter_desc": mass_sample.parameter_desc,
            "source": "mass_cytometry",
        }
        assert is_sample(mapping)

    def test_incomplete_mapping(self):
        assert not is_sample({"exprs": pd.DataFrame(), "source": "mass_cytometry"})
        assert not is_sample(["exprs"])


class TestCalculateFcsDigest:
    """Tests for calculate_fcs_digest()."""

    def test_same_panel_same_digest(self, mass_sample):
        digest = calculate_fcs_digest(mass_sample)
        explicit = calculate_fcs_digest(mass_sample.parameter_desc, mass_sample.parameter_name)
        assert digest == explicit
        assert len(digest) == 32

    def test_different_panel_different_digest(self):
        assert calculate_fcs_digest(["CD3"], ["FL1-A"]) != calculate_fcs_digest(["CD4"], ["FL1-A"])

    def test_non_sample_raises(self):
        with pytest.raises(TypeError, match="Expecting a cytometry sample"):
            calculate_fcs_digest({"exprs": None})


class TestTransform:

    def test_repr_and_params(self):
        transform = ArcsinhTransform(cofactor=5.0)
        assert repr(transform) == "ArcsinhTransform(cofactor=5.0)"
        assert transform.params == {"cofactor": 5.0}

    def test_validate_empty_sample(self):
        empty = Sample(
            pd.DataFrame(columns=["Nd142Di"], dtype=float), ["Nd142Di"], [""],
            InstrumentSource.MASS,
        )
        assert ArcsinhTransform().validate(empty) == ["Cannot process sample without events"]
