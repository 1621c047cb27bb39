"""
Batch conversion between syntaxes.

This module holds the conversion logic used by the CLI, independent of
command-line concerns. Converting is "read with strategy A, write with
strategy B": records flow from one engine to another as name-to-value maps.
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tabular_formats.engine import TabularEngine, sniff_options
from tabular_formats.errors import FileProcessingError
from tabular_formats.models import FormatName, ParsingStats
from tabular_formats.schema import TableSchema
from tabular_formats.writer import TableWriter

logger = logging.getLogger(__name__)

OUTPUT_EXTENSIONS = {
    FormatName.ARFF: ".arff",
    FormatName.COLUMNS: ".txt",
    FormatName.CSV: ".csv",
    FormatName.JSON: ".json",
    FormatName.MANCH: ".omn",
    FormatName.MIME: ".mime",
    FormatName.PERL: ".pl",
    FormatName.SEXP: ".sexp",
    FormatName.XML: ".html",
    FormatName.XSV: ".xsv",
}


class ConvertConfig(BaseModel):
    """Conversion settings (usually loaded from a JSON file)."""

    model_config = ConfigDict(extra="forbid")

    input_format: Optional[FormatName] = Field(None, description="Input syntax (None = sniff each file)")
    output_format: FormatName = Field(FormatName.CSV, description="Output syntax")
    input_options: Dict[str, Any] = Field(default_factory=dict, description="Options for reading")
    output_options: Dict[str, Any] = Field(default_factory=dict, description="Options for writing")
    continueOnError: bool = Field(False, description="Skip malformed records instead of failing the file")
    ignoreBrokenFiles: bool = Field(False, description="Continue the batch if individual files fail")
    flush_every: Optional[int] = Field(
        1000,
        description="Flush output every N records (None=every record, 0=on close only)",
        ge=0
    )
    max_files: Optional[int] = Field(None, description="Maximum number of files to convert", gt=0)
    file_mask: Optional[str] = Field(None, description="Regex filter on input file names")

    @field_validator("input_format", "output_format", mode="before")
    @classmethod
    def upper_format_name(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("file_mask")
    @classmethod
    def valid_regex(cls, v):
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid file_mask regex pattern '{v}': {e}")  # noqa: B904
        return v

    @classmethod
    def from_file(cls, path: Path) -> "ConvertConfig":
        """Load and validate a JSON config file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not valid JSON or fails validation
        """
        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")
        logger.info(f"Loading configuration from {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Config {path} is not valid JSON: {e}") from e
        try:
            return cls(**data)
        except ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(part) for part in err["loc"])
                logger.error(f"Config validation error: {loc}: {err['msg']}")
            raise ValueError(f"Configuration validation failed with {len(e.errors())} error(s)") from e


def copy_schema(source: TableSchema, target: TableSchema) -> None:
    """Declare the fields of ``source`` in ``target`` (names, types, layout)."""
    for fdef in source.field_defs():
        new = target.append(fdef.name, datatype=fdef.datatype or None, default=fdef.default)
        new.width = fdef.width
        new.start = fdef.start
        new.align = fdef.align
        new.splitter = fdef.splitter
        new.joiner = fdef.joiner


def output_path_for(input_file: Path, output_dir: Path, output_format: FormatName) -> Path:
    return output_dir / f"{input_file.stem}{OUTPUT_EXTENSIONS[output_format]}"


def convert_file(
    input_file: Path,
    output_file: Optional[Path],
    config: ConvertConfig,
    record_stats: Dict[str, ParsingStats]
) -> Tuple[bool, Optional[str]]:
    """Convert one file.

    Args:
        input_file: File to read
        output_file: File to write, or None to only parse (dry run)
        config: Conversion settings
        record_stats: Per-file statistics, filled in under the file's name

    Returns:
        Tuple of (success, error_message); a failure is only returned (not
        raised) when ``ignoreBrokenFiles`` is set

    Raises:
        FileProcessingError: If the file cannot be converted
    """
    if config.input_format is not None:
        reader = TabularEngine(config.input_format, config.input_options)
    else:
        sniffed = sniff_options(input_file)
        logger.info(f"{input_file.name}: sniffed as {sniffed['basicType']}")
        reader = TabularEngine(options={**sniffed, **config.input_options})
    stats = reader.stats
    record_stats[str(input_file)] = stats
    try:
        reader.open(input_file)
        stats = reader.stats
        record_stats[str(input_file)] = stats
        writer: Optional[TableWriter] = None
        if output_file is not None:
            out_engine = TabularEngine(config.output_format, config.output_options)
            writer = TableWriter(output_file, out_engine, flush_every=config.flush_every)
        try:
            reader.read_header()
            while True:
                record = reader.next_record()
                if record.at_end:
                    break
                if record.is_fatal:
                    raise FileProcessingError(
                        f"{input_file.name}: {record.messages[0]}", reader.source.line_number)
                if not record.ok:
                    problems = "; ".join(record.messages)
                    logger.error(f"Error processing {input_file.name} at record {record.record_number}: "
                                 f"{problems}")
                    if not config.continueOnError:
                        raise FileProcessingError(
                            f"Malformed record {record.record_number}: {problems}", reader.source.line_number)
                    stats.skipped_records += 1
                    continue
                if writer is not None:
                    if writer.records_written == 0 and out_engine.schema.count() == 0:
                        copy_schema(reader.schema, out_engine.schema)
                    writer.write_record(record.fields)
        finally:
            if writer is not None:
                if writer.records_written == 0 and out_engine.schema.count() == 0:
                    copy_schema(reader.schema, out_engine.schema)
                writer.close()
            reader.close()
        return (True, None)
    except (FileProcessingError, OSError, UnicodeDecodeError, ValueError) as e:
        error_msg = str(e)
        if config.ignoreBrokenFiles:
            logger.error(f"File conversion failed: {error_msg} (continuing due to ignoreBrokenFiles)")
            stats.file_failures += 1
            return (False, error_msg)
        if isinstance(e, FileProcessingError):
            raise
        raise FileProcessingError(error_msg) from e


def select_files(input_files: List[Path], config: ConvertConfig) -> List[Path]:
    """Apply ``file_mask`` and ``max_files``.

    Raises:
        ValueError: If the mask filters out every file
    """
    if config.file_mask is not None:
        pattern = re.compile(config.file_mask)
        original_count = len(input_files)
        input_files = [f for f in input_files if pattern.search(f.name)]
        filtered_count = original_count - len(input_files)
        if filtered_count > 0:
            logger.info(f"File mask '{config.file_mask}' filtered out {filtered_count} file(s), "
                        f"{len(input_files)} remaining")
        if not input_files:
            raise ValueError(f"File mask '{config.file_mask}' filtered out all input files. No files to process.")
    if config.max_files is not None and len(input_files) > config.max_files:
        logger.warning(f"Limiting processing to first {config.max_files} of {len(input_files)} files")
        input_files = input_files[:config.max_files]
    return input_files


def convert_files(
    config: ConvertConfig,
    input_files: List[Path],
    output_dir: Path,
    dry_run: bool = False,
    fail_fast: bool = False
) -> Tuple[Dict[str, Any], Dict[str, ParsingStats], Dict[str, str]]:
    """Convert a batch of files.

    Args:
        config: Conversion settings
        input_files: Files to convert
        output_dir: Directory for the converted files
        dry_run: If True, parse and check but don't write outputs
        fail_fast: If True, stop on the first file error

    Returns:
        Tuple: (stats dict, record_stats dict, file_errors dict)

    Raises:
        FileProcessingError: On a file failure when ``fail_fast`` is set
    """
    start_time = time.time()
    file_errors: Dict[str, str] = {}
    record_stats: Dict[str, ParsingStats] = {}
    successful_files = 0
    failed_files = 0

    input_files = select_files(input_files, config)
    if dry_run:
        logger.info("DRY RUN MODE - Files will be parsed but no outputs will be written")
    else:
        output_dir.mkdir(parents=True, exist_ok=True)
    in_name = config.input_format.value if config.input_format else "sniffed"
    logger.info(f"Converting {len(input_files)} file(s): {in_name} -> {config.output_format.value}, "
                f"fail-fast: {fail_fast}")

    for file_idx, input_file in enumerate(input_files, 1):
        file_start = time.time()
        if not input_file.exists():
            error_msg = f"Input file not found: {input_file}"
            logger.error(f"[{file_idx}/{len(input_files)}] {error_msg}")
            file_errors[str(input_file)] = error_msg
            failed_files += 1
            if fail_fast:
                raise FileProcessingError(error_msg)
            continue

        logger.info(f"[{file_idx}/{len(input_files)}] Processing: {input_file.name}")
        output_file = None if dry_run else output_path_for(input_file, output_dir, config.output_format)
        try:
            ok, error = convert_file(input_file, output_file, config, record_stats)
            if not ok:
                raise FileProcessingError(error or "Conversion failure")
            file_duration = time.time() - file_start
            logger.info(f"Completed {input_file.name} in {file_duration:.2f}s")
            successful_files += 1
        except FileProcessingError as e:
            file_duration = time.time() - file_start
            error_msg = f"{type(e).__name__}: {e}"
            logger.error(f"Failed {input_file.name} after {file_duration:.2f}s: {error_msg}")
            file_errors[str(input_file)] = error_msg
            failed_files += 1
            if fail_fast:
                raise FileProcessingError(f"File processing failed: {error_msg}") from e

    for stat in record_stats.values():
        stat.finish()

    total_duration = time.time() - start_time
    logger.info(f"Total processing time: {total_duration:.2f}s")
    logger.info(f"Files: {successful_files} succeeded, {failed_files} failed")

    stats = {
        "processed": successful_files + failed_files,
        "succeeded": successful_files,
        "failed": failed_files,
        "duration": total_duration
    }
    return stats, record_stats, file_errors
