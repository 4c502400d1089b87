"""
I/O for cytometry files, analysis artifacts and report output.

Key Functions:
    - import_fcs_file: Read an FCS file into a Sample (channels resolved,
      instrument identified, spillover compensated)
    - import_fcs_channels: Resolved channel Name/Desc table without events
    - load_aggregate_statistics / load_differential_abundance_analysis:
      Precomputed artifacts from an experiment's analysis directory
    - write_feature_report: Figures, tables and manifest for a feature report

Examples:
    >>> from cytoabundance.io import import_fcs_file
    >>> sample = import_fcs_file("patient01_day0.fcs")
    >>> sample.source
    <InstrumentSource.MASS: 'mass_cytometry'>
"""

from cytoabundance.io.channels import (
    MassRemovalError,
    resolve_channels,
    exprs_column_names,
    remove_mass_from_desc,
    remove_eq_from_desc,
)
from cytoabundance.io.fcs import (
    read_fcs_header,
    import_fcs_channels,
    import_fcs_file,
    parse_spillover,
)
from cytoabundance.io.artifacts import (
    AggregateStatistics,
    DifferentialAbundanceAnalysis,
    load_aggregate_statistics,
    load_differential_abundance_analysis,
)
from cytoabundance.io.writers import (
    write_events_csv,
    write_feature_report,
    write_report,
)

__all__ = [
    'MassRemovalError',
    'resolve_channels',
    'exprs_column_names',
    'remove_mass_from_desc',
    'remove_eq_from_desc',
    'read_fcs_header',
    'import_fcs_channels',
    'import_fcs_file',
    'parse_spillover',
    'AggregateStatistics',
    'DifferentialAbundanceAnalysis',
    'load_aggregate_statistics',
    'load_differential_abundance_analysis',
    'write_events_csv',
    'write_feature_report',
    'write_report',
]
