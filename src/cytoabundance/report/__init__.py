"""Differential abundance reporting."""

from cytoabundance.report.differential_abundance import (
    REPORT_CATEGORIES,
    report_differential_abundance,
    report_feature,
    close_report,
    iter_bundles,
)

__all__ = [
    'REPORT_CATEGORIES',
    'report_differential_abundance',
    'report_feature',
    'close_report',
    'iter_bundles',
]
