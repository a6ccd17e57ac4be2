"""Command-line interface for double-engine."""

import argparse
import json
import logging
import sys

from double_engine.config import load_config
from double_engine.errors import ConfigError
from double_engine.report import ReportError, load_report

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging to stderr."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="double-engine",
        description="Inspect test-double ledgers and engine configuration",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log progress to stderr",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # report subcommand
    report_parser = subparsers.add_parser(
        "report",
        help="Summarize an exported invocation ledger",
    )
    report_parser.add_argument(
        "path",
        help="JSON file written by dump_ledgers() or InvocationLedger.to_json()",
    )
    report_parser.add_argument(
        "--method",
        "-m",
        default=None,
        help="Only include invocations of this method",
    )
    report_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON instead of text",
    )

    # config subcommand
    config_parser = subparsers.add_parser(
        "config",
        help="Print the effective engine configuration",
    )
    config_parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="JSON config file (default: $DOUBLE_ENGINE_CONFIG)",
    )

    return parser


def parse_args(args: list[str]) -> argparse.Namespace:
    return create_parser().parse_args(args)


def run_report(path: str, method: str | None, as_json: bool) -> int:
    """Run the report command.

    Args:
        path: Exported ledger file
        method: Optional method name filter
        as_json: Print JSON instead of text

    Returns:
        Exit code (0 for success, 1 for unreadable input)
    """
    logger.info(f"Reporting on ledger export: {path}")
    try:
        report = load_report(path, method=method)
    except ReportError as e:
        logger.error(f"Report failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(report.to_json() if as_json else report.to_text())
    if report.lenient_stand_ins:
        logger.warning(f"{len(report.lenient_stand_ins)} lenient stand-ins found")
    return 0


def run_config(path: str | None) -> int:
    """Run the config command."""
    try:
        config = load_config(path)
    except ConfigError as e:
        logger.error(f"Invalid configuration from {e.source}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(config.to_dict(), indent=2))
    return 0


def run_cli(args: list[str]) -> int:
    """Run the CLI with the given arguments.

    Args:
        args: Command-line arguments (without program name)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    try:
        parsed = parse_args(args)
    except SystemExit as e:
        return e.code if e.code else 1

    setup_logging(parsed.verbose)

    if parsed.command is None:
        # No command - show help
        create_parser().print_help(sys.stderr)
        return 1

    if parsed.command == "report":
        return run_report(parsed.path, parsed.method, parsed.json)
    elif parsed.command == "config":
        return run_config(parsed.config)

    return 1


def main():
    """Entry point for the CLI."""
    sys.exit(run_cli(sys.argv[1:]))


if __name__ == "__main__":
    main()
