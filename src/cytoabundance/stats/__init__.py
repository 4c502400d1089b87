"""
Preprocessing transforms and abundance tables.

Modules:
    preprocessing: Spillover compensation, arcsinh (mass) and logicle (flow)
    abundance: Frequencies, line-plot predicate and export tables
"""

from cytoabundance.stats.preprocessing import (
    CompensationTransform,
    ArcsinhTransform,
    LogicleTransform,
    preprocess,
)
from cytoabundance.stats.abundance import (
    MissingEffectSizeError,
    compute_frequencies,
    include_line_plots,
    export_differential_abundance,
)

__all__ = [
    'CompensationTransform',
    'ArcsinhTransform',
    'LogicleTransform',
    'preprocess',
    'MissingEffectSizeError',
    'compute_frequencies',
    'include_line_plots',
    'export_differential_abundance',
]
