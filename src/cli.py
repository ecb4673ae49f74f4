"""Command-line interface for receipt recognition and CSV export.

Provides subcommands for processing a single receipt to JSON, processing
a folder of receipts to CSV, and reporting engine and profile status.
"""

import argparse
import csv
import json
import sys
from collections.abc import Iterable
from pathlib import Path

from src.pipeline.orchestrator import ProcessingResult, ReceiptPipeline
from src.pipeline.profiles import ProcessingProfile, recommend_profile
from src.utils.config import PROFILES, FileConfig, load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

AUTO_PROFILE = "auto"

_META_COLUMNS = [
    "filename",
    "status",
    "profile",
    "processing_time_ms",
    "confidence",
    "validation_passed",
    "error",
]
_RECORD_COLUMNS = (
    "invoice_number",
    "store_name",
    "amount",
    "currency",
    "date",
    "payment_method",
    "extraction_method",
    "cashback",
)


def _find_documents(
    input_dir: Path, extensions: Iterable[str] | None = None
) -> list[Path]:
    """Find all supported receipt files in a directory.

    Args:
        input_dir: Directory to scan for receipts.
        extensions: Accepted file extensions; defaults to those the file
            validator accepts.

    Returns:
        Sorted list of receipt file paths.
    """
    if extensions is None:
        extensions = FileConfig().extensions
    suffixes = {ext.lower() for ext in extensions}
    return sorted(
        path
        for path in input_dir.iterdir()
        if path.is_file() and path.suffix.lower() in suffixes
    )


def _resolve_profile(path: Path, profile: str | None) -> ProcessingProfile | None:
    """Map the ``--profile`` option to a profile, recommending one for ``auto``."""
    if profile == AUTO_PROFILE:
        return recommend_profile(path)
    return ProcessingProfile(profile) if profile else None


def _result_row(file_path: Path, result: ProcessingResult) -> dict[str, object]:
    """Flatten a processing result into one CSV row."""
    row: dict[str, object] = {
        "filename": file_path.name,
        "status": "success" if result.success else "failed",
        "profile": result.profile,
        "processing_time_ms": round(result.processing_time_ms, 1),
        "confidence": round(result.confidence, 3),
        "validation_passed": result.validation.is_valid if result.validation else None,
        "error": result.error,
    }
    if result.parsed_data is not None:
        data = result.parsed_data.to_dict()
        row.update({column: data[column] for column in _RECORD_COLUMNS})
        row["item_count"] = len(result.parsed_data.items)
    return row


def process_folder(
    input_dir: Path,
    output_csv: Path,
    profile: str | None = None,
    config_path: Path | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Process all receipts in a folder and export results to CSV.

    Args:
        input_dir: Directory containing receipt files.
        output_csv: Path for the output CSV file.
        profile: Processing profile name, ``"auto"``, or ``None`` for the
            configured default.
        config_path: Optional YAML configuration file.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    config = load_config(config_path)
    files = _find_documents(input_dir, config.files.extensions)
    if not files:
        logger.warning("No receipts found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d receipts to process", len(files))

    results: list[dict[str, object]] = []
    successful = 0
    failed = 0

    with ReceiptPipeline(config) as pipeline:
        for i, file_path in enumerate(files, 1):
            if verbose:
                print(f"Processing [{i}/{len(files)}]: {file_path.name}")

            result = pipeline.process_receipt(
                file_path, _resolve_profile(file_path, profile)
            )
            results.append(_result_row(file_path, result))
            if result.success:
                successful += 1
            else:
                logger.error("Failed to process %s: %s", file_path.name, result.error)
                failed += 1

    _write_csv(results, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write processing results to a CSV file.

    Args:
        results: List of result rows.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    all_keys: set[str] = set()
    for r in results:
        all_keys.update(r.keys())

    field_columns = sorted(all_keys - set(_META_COLUMNS))
    columns = [c for c in _META_COLUMNS if c in all_keys] + field_columns

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout."""
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def extract_single(
    file_path: Path,
    profile: str | None = None,
    config_path: Path | None = None,
) -> dict[str, object]:
    """Process a single receipt and return the serialized result.

    Args:
        file_path: Path to the receipt file.
        profile: Processing profile name, ``"auto"``, or ``None``.
        config_path: Optional YAML configuration file.

    Returns:
        Dictionary with the filename and the full processing result.
    """
    with ReceiptPipeline(load_config(config_path)) as pipeline:
        result = pipeline.process_receipt(
            file_path, _resolve_profile(file_path, profile)
        )
    return {"filename": file_path.name, **result.to_dict()}


def system_status(config_path: Path | None = None) -> dict[str, object]:
    """Report enabled engines, weights, profiles, and file limits."""
    with ReceiptPipeline(load_config(config_path)) as pipeline:
        return pipeline.system_status()


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Receipt OCR Processor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    profile_choices = [*PROFILES, AUTO_PROFILE]

    batch_parser = subparsers.add_parser("batch", help="Process a folder of receipts")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with receipts"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-p",
        "--profile",
        choices=profile_choices,
        help="Processing profile (default: from configuration)",
    )
    batch_parser.add_argument("-c", "--config", type=Path, help="YAML configuration")
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single receipt")
    single_parser.add_argument("file", type=Path, help="Receipt file to process")
    single_parser.add_argument(
        "-p",
        "--profile",
        choices=profile_choices,
        help="Processing profile (default: from configuration)",
    )
    single_parser.add_argument("-c", "--config", type=Path, help="YAML configuration")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    status_parser = subparsers.add_parser("status", help="Show engine status")
    status_parser.add_argument("-c", "--config", type=Path, help="YAML configuration")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(
            args.input_dir,
            args.output,
            args.profile,
            args.config,
            args.verbose,
        )
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        result = extract_single(args.file, args.profile, args.config)
        output_str = json.dumps(result, indent=2, default=str)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
        if not result["success"]:
            sys.exit(1)
    else:
        print(json.dumps(system_status(args.config), indent=2, default=str))


if __name__ == "__main__":
    main()
