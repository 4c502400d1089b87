"""
cytoabundance channels command - inspect an FCS file's channels.

Usage:
    cytoabundance channels sample.fcs
"""

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

from cytoabundance.core.sample import InstrumentIdentificationError, classify_instrument
from cytoabundance.io.channels import MassRemovalError, exprs_column_names, resolve_channels
from cytoabundance.io.fcs import read_fcs_header

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the channels subcommand."""
    parser = subparsers.add_parser(
        "channels",
        help="Show resolved channels and instrument type of an FCS file",
        description="Resolve $PnN/$PnS channel names, strip mass tokens, "
                    "and identify the instrument (flow vs mass cytometry)"
    )
    parser.add_argument("input", type=Path, help="FCS file")
    parser.set_defaults(func=run_channels)


def run_channels(args: argparse.Namespace) -> int:
    """Execute the channels command."""
    try:
        header = read_fcs_header(args.input)
        channels = resolve_channels(header)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    table = channels.assign(
        Column=exprs_column_names(list(channels["Name"]), list(channels["Desc"]))
    )
    with pd.option_context("display.max_rows", None, "display.width", 120):
        print(table.to_string(index=False))

    try:
        source = classify_instrument(list(channels["Name"]))
    except InstrumentIdentificationError as e:
        print(f"Instrument: unknown ({e})", file=sys.stderr)
        return 1

    print(f"\nInstrument: {source.value}")
    return 0
