"""Shared utilities."""

from cytoabundance.utils.fileio import atomic_write_json

__all__ = ['atomic_write_json']
