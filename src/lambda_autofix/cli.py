"""
Command line interface with subcommands.

Exit codes of ``run``:
    0  cycle completed, no attempt failed or rolled back
    1  cycle completed, at least one attempt failed or rolled back
    2  cycle aborted (invalid configuration, signal source outage, missing SDK)
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Tuple

from .version import __version__
from .config import AutoFixConfig
from .exceptions import ConfigurationError, SignalSourceOutageError
from .integrations.base import ControlPlane, SignalSource
from .logging_config import configure_cli_logging
from .models import RunSummary
from .remediation.cooldown import CooldownTable
from .remediation.scheduler import RemediationOrchestrator
from .reporting.exporters import export_json, export_markdown
from .reporting.formatter import format_run_summary
from .storage.cooldown_store import CooldownStore
from .utils import PathValidationError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ATTEMPTS_FAILED = 1
EXIT_ABORTED = 2


def _configure_logging(args: argparse.Namespace, config: Optional[AutoFixConfig] = None) -> None:
    if config is None:
        configure_cli_logging(verbose=args.verbose, quiet=args.quiet)
        return
    configure_cli_logging(
        verbose=args.verbose,
        quiet=args.quiet,
        level=config.log_level.upper(),
        log_file=config.log_file,
        use_json=config.log_json
    )


def load_config(args: argparse.Namespace) -> AutoFixConfig:
    """Load configuration and apply command line overrides."""
    config = AutoFixConfig.load(args.config_file) if args.config_file else AutoFixConfig.load()

    if getattr(args, 'resources', None):
        config.resources = [r.strip() for r in args.resources.split(",") if r.strip()]
    if getattr(args, 'auto_fix', False):
        config.auto_fix_enabled = True
    if getattr(args, 'dry_run', False):
        config.auto_fix_enabled = False
    if getattr(args, 'region', None):
        config.region = args.region
    if getattr(args, 'state_file', None):
        config.state_file = args.state_file

    return config


def build_adapters(config: AutoFixConfig) -> Tuple[SignalSource, ControlPlane]:
    """
    Create the AWS signal source and control plane for ``config.region``.

    Raises:
        ImportError: If boto3 is not installed
    """
    from .integrations.aws import CloudWatchSignalSource, LambdaControlPlane

    return CloudWatchSignalSource(region=config.region), LambdaControlPlane(region=config.region)


def run_once(
    config: AutoFixConfig,
    signal_source: SignalSource,
    control_plane: ControlPlane
) -> RunSummary:
    """Run one cycle, loading and saving cooldown state when a state file is set."""
    store = CooldownStore(config.state_file) if config.state_file else None
    cooldowns = store.load() if store else CooldownTable()

    orchestrator = RemediationOrchestrator(signal_source, control_plane, cooldowns=cooldowns)
    summary = asyncio.run(orchestrator.run_cycle(config))

    if store:
        store.save(cooldowns)
        store.record_attempts(summary.attempts)

    return summary


def handle_run(args: argparse.Namespace) -> int:
    """
    Handle the run subcommand.

    Returns:
        Exit code (see module docstring)
    """
    try:
        config = load_config(args)
        _configure_logging(args, config)
        config.validate()
    except ConfigurationError as e:
        _configure_logging(args)
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ABORTED

    try:
        signal_source, control_plane = build_adapters(config)
    except ImportError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ABORTED

    try:
        summary = run_once(config, signal_source, control_plane)
    except (ConfigurationError, SignalSourceOutageError) as e:
        logger.error(f"Cycle aborted: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ABORTED

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print(format_run_summary(summary))

    try:
        if args.output:
            export_json(summary, args.output)
            print(f"\n✓ Results saved to: {args.output}")
        if args.export_markdown:
            export_markdown(summary, args.export_markdown)
            print(f"✓ Markdown report saved to: {args.export_markdown}")
    except (PathValidationError, OSError) as e:
        logger.error(f"Failed to write output: {e}")
        return EXIT_ATTEMPTS_FAILED

    if summary.failed or summary.rolled_back:
        return EXIT_ATTEMPTS_FAILED
    return EXIT_OK


def handle_version(args: argparse.Namespace) -> int:
    """Handle the version subcommand."""
    print(f"lambda-autofix {__version__}")
    print("Automated remediation with verified rollback for serverless functions")

    if args.verbose:
        print(f"\nPython: {sys.version}")

    return EXIT_OK


def handle_config(args: argparse.Namespace) -> int:
    """
    Handle the config subcommand.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    _configure_logging(args)
    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return EXIT_ATTEMPTS_FAILED

    if args.action == "validate":
        try:
            config.validate()
        except ConfigurationError as e:
            print(f"ERROR: Configuration validation failed - {e}")
            return EXIT_ATTEMPTS_FAILED
        print("✓ Configuration is valid")
        return EXIT_OK

    print("Current lambda-autofix configuration:")
    print(json.dumps(config.to_dict(), indent=2))
    return EXIT_OK


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser with subcommands.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="lambda-autofix",
        description="lambda-autofix: detect, fix, verify and roll back failing functions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Report only (auto-fix disabled unless configured)
  %(prog)s run --resources orders-api,billing-worker

  # Apply fixes and keep cooldown state between runs
  %(prog)s run --auto-fix --state-file ~/.lambda-autofix/state.db

  # Show version and configuration
  %(prog)s version
  %(prog)s config show
  %(prog)s config validate

Environment Variables:
  LAMBDA_AUTOFIX_RESOURCES          Comma-separated function names
  LAMBDA_AUTOFIX_AUTO_FIX_ENABLED   Apply fixes (default: false)
  LAMBDA_AUTOFIX_REGION             AWS region (default: us-east-1)
  LAMBDA_AUTOFIX_STATE_FILE         SQLite file for cooldown state
        """
    )

    # Global flags (available to all subcommands)
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Enable quiet mode (only errors)"
    )
    parser.add_argument(
        "--config-file",
        metavar="PATH",
        help="Path to configuration file"
    )

    subparsers = parser.add_subparsers(
        dest="subcommand",
        help="Available subcommands"
    )

    # ========================================
    # RUN subcommand
    # ========================================
    run_parser = subparsers.add_parser(
        "run",
        help="Run one monitoring and remediation cycle"
    )
    run_parser.add_argument(
        "--resources",
        help="Comma-separated resources to monitor (overrides configuration)"
    )
    mode = run_parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--auto-fix",
        action="store_true",
        help="Apply fixes to eligible resources"
    )
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Analyze and report without applying fixes"
    )
    run_parser.add_argument("--region", help="AWS region")
    run_parser.add_argument(
        "--state-file",
        metavar="PATH",
        help="SQLite file holding cooldown state between runs"
    )
    run_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON"
    )
    run_parser.add_argument(
        "--output", "-o",
        help="Path to write JSON results"
    )
    run_parser.add_argument(
        "--export-markdown",
        metavar="PATH",
        help="Export results as Markdown"
    )
    run_parser.set_defaults(func=handle_run)

    # ========================================
    # VERSION subcommand
    # ========================================
    version_parser = subparsers.add_parser(
        "version",
        help="Show version information"
    )
    version_parser.set_defaults(func=handle_version)

    # ========================================
    # CONFIG subcommand
    # ========================================
    config_parser = subparsers.add_parser(
        "config",
        help="Show or validate configuration"
    )
    config_parser.add_argument(
        "action",
        nargs="?",
        choices=["show", "validate"],
        default="show",
        help="Config action (default: show)"
    )
    config_parser.set_defaults(func=handle_config)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        sys.exit(EXIT_ATTEMPTS_FAILED)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
