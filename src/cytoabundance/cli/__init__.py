"""
cytoabundance CLI - single-file cytometry tooling.

Commands:
    cytoabundance channels    - Show resolved channels and instrument type of an FCS file
    cytoabundance preprocess  - Import, compensate and transform an FCS file to CSV
"""

import argparse
import logging
import sys
from typing import Optional, List

from cytoabundance import __version__


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for cytoabundance."""
    parser = argparse.ArgumentParser(
        prog="cytoabundance",
        description="Cytometry import and differential abundance tooling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  channels    Show resolved channel names/descriptions and instrument type
  preprocess  Import, compensate and transform an FCS file to CSV

Examples:
  cytoabundance channels sample.fcs
  cytoabundance preprocess sample.fcs -o sample.events.csv --cofactor 5
  cytoabundance preprocess sample.fcs -o sample.events.csv --config cytoabundance.yaml
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from cytoabundance.cli import channels, preprocess
    channels.register_parser(subparsers)
    preprocess.register_parser(subparsers)

    argv = list(sys.argv[1:] if args is None else args)
    parsed_args = parser.parse_args(argv)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Raw arguments let config merging tell explicit flags from defaults
    parsed_args.argv = argv

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
