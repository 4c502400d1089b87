"""
Core data structures for cytometry differential abundance analysis.

1. Sample: Imported FCS events with resolved channels and instrument type
2. InstrumentSource: Flow vs mass cytometry, with per-instrument preprocessing
3. Experiment: Study design (samples, sample features, feature definitions)
4. Transform: Abstract base class for immutable sample transformations
"""

from cytoabundance.core.sample import (
    InstrumentSource,
    InstrumentIdentificationError,
    Sample,
    is_sample,
    classify_instrument,
    calculate_fcs_digest,
)
from cytoabundance.core.experiment import Experiment, FeatureColumn
from cytoabundance.core.transform import Transform

__all__ = [
    'InstrumentSource',
    'InstrumentIdentificationError',
    'Sample',
    'is_sample',
    'classify_instrument',
    'calculate_fcs_digest',
    'Experiment',
    'FeatureColumn',
    'Transform',
]
