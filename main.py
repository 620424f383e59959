# =============================================================================
# main.py - CLI entry point
# =============================================================================

import argparse
import logging
import sys

from core.errors import AuthError, SignInToolError, ValidationError, WriteError
from core.pipeline import FILE_MODE, GROUP_MODE, run_sign_in_report
from utils.config import Config
from utils.logging_setup import setup_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_VALIDATION = 2
EXIT_AUTH = 3
EXIT_WRITE = 4


def log_progress(current: int, total: int, identifier: str) -> None:
    logging.getLogger(__name__).info(f"[{current}/{total}] {identifier}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Microsoft Graph last sign-in report")
    subparsers = parser.add_subparsers(dest='mode', help='Input mode')

    file_parser = subparsers.add_parser(FILE_MODE, help='Read users from a CSV or Excel file')
    file_parser.add_argument('input_file', help='Input CSV/XLSX file path')
    file_parser.add_argument('output_csv', help='Output CSV file path')

    group_parser = subparsers.add_parser(GROUP_MODE, help='Read users from a group')
    group_parser.add_argument('group', help='Group email address or exact display name')
    group_parser.add_argument('output_csv', help='Output CSV file path')

    for sub in (file_parser, group_parser):
        sub.add_argument('--threshold', type=int, default=None,
                         help='Days counted as recent (1-90, clamped; default from DEFAULT_THRESHOLD_DAYS)')
        sub.add_argument('--pause-ms', type=int, default=None,
                         help='Pause between users in milliseconds (default from REQUEST_PAUSE_MS)')
        sub.add_argument('--check-permissions', action='store_true',
                         help='Report missing Graph permissions before the run')

    # Global arguments
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    parser.add_argument('--log-dir', default='logs', help='Directory for log files')
    return parser


def main(argv=None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.mode:
        parser.print_help()
        return EXIT_FAILED

    setup_logging(args.log_level, args.log_dir)
    logger = logging.getLogger(__name__)

    try:
        config = Config()
        if not config.validate_graph_config():
            missing_vars = config.get_missing_graph_vars()
            raise ValidationError(f"Missing required environment variables: {missing_vars}")

        source = args.input_file if args.mode == FILE_MODE else args.group
        result = run_sign_in_report(
            config,
            args.mode,
            source,
            args.output_csv,
            threshold_days=args.threshold,
            progress_callback=log_progress,
            check_permissions=args.check_permissions,
            pause_ms=args.pause_ms,
        )

    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_VALIDATION
    except AuthError as e:
        logger.error(f"Authentication failed: {e}")
        return EXIT_AUTH
    except WriteError as e:
        logger.error(f"Could not write report: {e}")
        return EXIT_WRITE
    except SignInToolError as e:
        logger.error(f"Processing failed: {e}")
        return EXIT_FAILED

    summary = result.report.summary()
    if result.used_fallback:
        logger.warning(f"Report saved to alternate location: {result.output_path}")
    logger.info("Processing completed successfully!")
    logger.info(f"Report: {result.output_path}")
    logger.info(
        f"Total: {summary.total}, within {result.report.threshold_days} days: {summary.within_threshold}, "
        f"outside: {summary.outside_threshold}, errors: {summary.error}"
    )
    if result.skipped_rows:
        logger.info(f"Blank rows skipped: {result.skipped_rows}")
    return EXIT_OK


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
