"""
cytoabundance - Cytometry import and differential abundance reporting

Reads flow and mass cytometry FCS files, preprocesses them per instrument
type, and renders differential abundance reports (tables, volcano, box, bar
and line plots) from precomputed clustering and test results.
"""

__version__ = "0.1.0"

from cytoabundance.core.sample import InstrumentSource, Sample
from cytoabundance.core.experiment import Experiment
from cytoabundance.core.transform import Transform

__all__ = [
    "InstrumentSource",
    "Sample",
    "Experiment",
    "Transform",
]
