"""
Command-line interface for converting tables between syntaxes.

This module handles CLI argument parsing, logging configuration,
and the summary report.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from tabular_formats.convert import ConvertConfig, convert_files
from tabular_formats.errors import FileProcessingError
from tabular_formats.models import FormatName
from tabular_formats.options import DataOptions, add_options_to_argparse, options_from_namespace

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

INPUT_PREFIX = "in-"
OUTPUT_PREFIX = "out-"
FORMAT_CHOICES = [f.value for f in FormatName]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabular-convert",
        description="Convert tables between CSV, ARFF, COLUMNS, JSON, MANCH, MIME, PERL, SEXP, XML and XSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Comma-separated with a header row to an XHTML table
  tabular-convert --from CSV --in-fieldSep , --in-header --to XML --out ./output signers.csv

  # Guess each input's syntax
  tabular-convert --sniff --to JSON --out ./output data1.arff data2.csv

  # Settings from a config file, parse only
  tabular-convert --config convert.json --out ./output --dry-run *.xsv
        """
    )
    parser.add_argument("input_files", nargs="+", type=Path, help="Input files")
    parser.add_argument("--from", dest="input_format", type=str.upper, choices=FORMAT_CHOICES,
                        help="Input syntax")
    parser.add_argument("--to", dest="output_format", type=str.upper, choices=FORMAT_CHOICES,
                        help="Output syntax")
    parser.add_argument("--out", required=True, type=Path, help="Output directory")
    parser.add_argument("--config", type=Path, help="Config JSON file")
    parser.add_argument("--sniff", action="store_true", help="Guess the input syntax of each file")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    parser.add_argument("--dry-run", action="store_true",
                        help="Parse and check without writing outputs")
    parser.add_argument("--fail-fast", action="store_true",
                        help="Stop processing on first file error (default: continue)")
    parser.add_argument("--continue-on-error", action="store_true", default=None,
                        help="Skip malformed records instead of failing the file")
    parser.add_argument("--ignore-broken-files", action="store_true", default=None,
                        help="Record file failures and keep going")
    add_options_to_argparse(parser, prefix=INPUT_PREFIX)
    add_options_to_argparse(parser, prefix=OUTPUT_PREFIX)
    return parser


def given_options(args: argparse.Namespace, prefix: str) -> Dict[str, Any]:
    """Option values given on the command line under ``prefix``.

    Raises:
        ValueError: If any value is rejected by its option's type
    """
    options = DataOptions()
    _, rejected = options_from_namespace(args, options, prefix)
    if rejected:
        raise ValueError(f"Invalid value for option(s): {', '.join(f'--{prefix}{n}' for n in rejected)}")
    dest_prefix = prefix.replace("-", "_")
    return {name: options.get(name) for name in type(options.model).model_fields
            if hasattr(args, f"{dest_prefix}{name}")}


def build_config(args: argparse.Namespace) -> ConvertConfig:
    """Merge the config file (if any) with command-line settings, which win.

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If settings are invalid or no output syntax is given
    """
    config = ConvertConfig.from_file(args.config) if args.config else ConvertConfig()
    updates: Dict[str, Any] = {}
    if args.input_format:
        updates["input_format"] = FormatName(args.input_format)
    elif args.sniff:
        updates["input_format"] = None
    if args.output_format:
        updates["output_format"] = FormatName(args.output_format)
    elif not args.config:
        raise ValueError("No output syntax: give --to or a config file")
    if args.continue_on_error is not None:
        updates["continueOnError"] = args.continue_on_error
    if args.ignore_broken_files is not None:
        updates["ignoreBrokenFiles"] = args.ignore_broken_files
    updates["input_options"] = {**config.input_options, **given_options(args, INPUT_PREFIX)}
    updates["output_options"] = {**config.output_options, **given_options(args, OUTPUT_PREFIX)}
    if not args.config and "input_format" not in updates:
        raise ValueError("No input syntax: give --from, --sniff or a config file")
    return config.model_copy(update=updates)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point.

    Returns:
        Exit code: 0 = success, 1 = all files failed, 2 = partial failure
    """
    args = build_parser().parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    try:
        config = build_config(args)
        stats, record_stats, file_errors = convert_files(
            config,
            args.input_files,
            args.out,
            dry_run=args.dry_run,
            fail_fast=args.fail_fast
        )

        logger.info("="*80)
        logger.info("CONVERSION COMPLETE")
        logger.info("="*80)

        if record_stats:
            logger.info("Performance Metrics:")
            for name, pstats in sorted(record_stats.items()):
                success_rate = (pstats.records_ok / pstats.records_read * 100) if pstats.records_read > 0 else 0
                logger.info(f"  {name}:")
                logger.info(f"    Records read: {pstats.records_read:,}")
                logger.info(f"    Successful: {pstats.records_ok:,} ({success_rate:.1f}%)")
                if pstats.malformed_records > 0:
                    logger.info(f"    Malformed: {pstats.malformed_records:,}")
                if pstats.skipped_records > 0:
                    logger.info(f"    Skipped: {pstats.skipped_records:,}")
                logger.info(f"    Field errors: {pstats.field_errors:,}")
                if pstats.schema_errors or pstats.datatype_errors:
                    logger.info(f"    Schema errors: {pstats.schema_errors:,}, "
                                f"datatype errors: {pstats.datatype_errors:,}")
                if pstats.file_failures > 0:
                    logger.info(f"    File failures: {pstats.file_failures:,}")
                logger.info(f"    Duration: {pstats.duration:.2f}s")
                logger.info(f"    Throughput: {pstats.records_per_second:.0f} records/sec")

        total_ok = sum(s.records_ok for s in record_stats.values())
        total_skipped = sum(s.skipped_records for s in record_stats.values())
        total_errors = sum(s.field_errors + s.schema_errors + s.datatype_errors for s in record_stats.values())

        logger.info("="*80)
        logger.info(f"Total Successful: {total_ok:,} records ({stats['succeeded']} of {stats['processed']} files)")
        if total_skipped > 0:
            logger.warning(f"Total Skipped: {total_skipped:,} records")
        if total_errors > 0:
            logger.warning(f"Total Reported Errors: {total_errors:,}")

        if not args.dry_run:
            logger.info(f"Output Location: {args.out.resolve()}")
        else:
            logger.info("DRY RUN - No outputs written")

        if file_errors:
            logger.error("="*80)
            logger.error(f"FILE PROCESSING ERRORS ({len(file_errors)} files failed):")
            for file_path, error_msg in file_errors.items():
                logger.error(f"  {file_path}: {error_msg}")
            logger.error("="*80)

        logger.info("="*80)

        failed_file_count = len(file_errors)
        successful_file_count = stats["processed"] - failed_file_count

        if failed_file_count == 0:
            return 0
        elif successful_file_count == 0:
            return 1
        else:
            return 2

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return 1
    except FileProcessingError as e:
        logger.error(f"File processing error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
