import argparse
import sys

from cytogate.utils.logging import configure_logging


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="cytogate",
        description="CytoGate: hierarchical gating of flow cytometry events."
    )
    parser.add_argument(
        "--log-level", default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # ------------------------------------------------------------
    # validate
    # ------------------------------------------------------------
    validate = subparsers.add_parser(
        "validate",
        help="Validate a gating strategy YAML file and print its hierarchy."
    )
    validate.add_argument("--strategy", required=True, help="Gating strategy YAML")

    # ------------------------------------------------------------
    # gate
    # ------------------------------------------------------------
    gate = subparsers.add_parser(
        "gate",
        help="Apply a gating strategy to an event file (CSV/TSV/FCS)."
    )
    gate.add_argument("--events", required=True, help="Event table (.csv, .tsv or .fcs)")
    gate.add_argument("--strategy", required=True, help="Gating strategy YAML")
    gate.add_argument("--outdir", required=True, help="Output directory")
    gate.add_argument(
        "--export-events", action="store_true",
        help="Also write the events of every population as gated_<name>.csv"
    )

    # ------------------------------------------------------------
    # Parse args
    # ------------------------------------------------------------
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    # ------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------
    if args.command == "validate":
        from cytogate.cli.validate_strategy import cmd_validate_strategy
        return cmd_validate_strategy(args.strategy)

    elif args.command == "gate":
        from cytogate.cli.gate_events import cmd_gate_events
        return cmd_gate_events(
            args.events,
            args.strategy,
            args.outdir,
            export_events=args.export_events,
        )

    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
