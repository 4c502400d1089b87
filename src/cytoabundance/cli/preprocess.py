"""
cytoabundance preprocess command - FCS file to transformed events CSV.

Usage:
    cytoabundance preprocess sample.fcs -o sample.events.csv
    cytoabundance preprocess sample.fcs -o sample.events.csv --cofactor 5 --no-linearize
"""

import argparse
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the preprocess subcommand."""
    parser = subparsers.add_parser(
        "preprocess",
        help="Import, compensate and transform an FCS file to CSV",
        description="Import an FCS file, apply its spillover matrix, and transform events "
                    "(arcsinh for mass cytometry, logicle for flow cytometry)"
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (optional, CLI args override config values)")
    parser.add_argument("input", type=Path, help="FCS file")
    parser.add_argument("--output", "-o", type=Path, required=True,
                        help="Output CSV (one row per event)")
    parser.add_argument("--cofactor", type=float, default=5.0,
                        help="Arcsinh cofactor for mass cytometry (default: 5)")
    parser.add_argument("--no-linearize", dest="linearize", action="store_false",
                        help="Keep log-amplified ($PnE) channels as stored")
    parser.add_argument("--logicle-m", dest="logicle_m", type=float, default=4.5,
                        help="Logicle decades for flow cytometry (default: 4.5)")

    parser.set_defaults(func=run_preprocess)


def run_preprocess(args: argparse.Namespace) -> int:
    """Execute the preprocess command."""
    from cytoabundance.config import (
        config_from_args,
        load_config,
        merge_config_with_args,
        validate_config,
    )
    from cytoabundance.core.sample import InstrumentIdentificationError
    from cytoabundance.io.fcs import import_fcs_file
    from cytoabundance.io.writers import write_events_csv
    from cytoabundance.stats.preprocessing import preprocess

    if args.config:
        logger.info(f"Loading configuration from {args.config}")
        try:
            config = load_config(args.config)
            validate_config(config)
            args = merge_config_with_args(config, args, getattr(args, "argv", None))
        except (FileNotFoundError, ValueError) as e:
            print(f"ERROR: Config file error: {e}", file=sys.stderr)
            return 1

    analysis_config = config_from_args(args)
    if analysis_config.preprocess.cofactor <= 0:
        print(f"ERROR: --cofactor must be positive, got {analysis_config.preprocess.cofactor}",
              file=sys.stderr)
        return 1

    try:
        sample = import_fcs_file(args.input, linearize=analysis_config.preprocess.linearize)
        logger.info(
            f"Imported {sample.n_events} events x {sample.n_parameters} channels "
            f"({sample.source.value})"
        )
        transformed = preprocess(sample, config=analysis_config.preprocess)
    except (FileNotFoundError, ValueError) as e:
        # MassRemovalError and InstrumentIdentificationError are ValueErrors
        kind = "instrument" if isinstance(e, InstrumentIdentificationError) else "input"
        print(f"ERROR: {kind} error: {e}", file=sys.stderr)
        return 1

    write_events_csv(transformed, args.output)
    return 0
