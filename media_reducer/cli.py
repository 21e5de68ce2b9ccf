"""
cli.py - Command-line entry point.

Usage:
    media-reducer input.pdf -o output.pdf
    media-reducer photo.jpg -c settings.json
    media-reducer *.pdf *.png --output-dir ./compressed/
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .compressor import compress_file
from .config import load_config
from .exceptions import ReducerError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="media-reducer",
        description="Compress PDF, JPEG, PNG, GIF and WebP files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  media-reducer report.pdf -o report_small.pdf
  media-reducer report.pdf -c settings.json
  media-reducer *.pdf *.jpg --output-dir ./out/

PDF documents keep their structure: images are re-encoded in place,
unused fonts and metadata are removed when the config asks for it.
"""
    )

    parser.add_argument(
        "input",
        nargs="+",
        type=Path,
        help="Input file(s)"
    )

    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "-o", "--output",
        type=Path,
        help="Output file (single input only)"
    )
    output.add_argument(
        "--output-dir",
        type=Path,
        help="Output directory (for multiple files)"
    )

    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="JSON configuration file (default: built-in settings)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    return parser.parse_args(argv)


def default_output(input_path: Path, output_dir: Optional[Path] = None) -> Path:
    name = f"{input_path.stem}_compressed{input_path.suffix}"
    return (output_dir or input_path.parent) / name


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
    except ReducerError as e:
        print(f"Error [{e.stage}]: {e}", file=sys.stderr)
        return 1

    # Validate inputs
    valid_inputs = []
    for p in args.input:
        if not p.is_file():
            print(f"Error: File not found: {p}", file=sys.stderr)
            continue
        valid_inputs.append(p)

    if not valid_inputs:
        print("Error: No valid input files", file=sys.stderr)
        return 1

    if len(valid_inputs) > 1 and args.output:
        print("Error: Use --output-dir for multiple files", file=sys.stderr)
        return 1

    total_in = 0
    total_out = 0
    successes = 0

    for i, input_path in enumerate(valid_inputs):
        output_path = args.output or default_output(input_path, args.output_dir)
        if len(valid_inputs) > 1:
            print(f"\n[{i+1}/{len(valid_inputs)}] {input_path.name}")

        try:
            result = compress_file(input_path, output_path, config)
        except ReducerError as e:
            logger.debug("Compression failed", exc_info=True)
            print(f"Error [{e.stage}]: {input_path}: {e}", file=sys.stderr)
            continue

        total_in += result.input_size
        total_out += result.output_size
        successes += 1
        print(f"\n{result.summary()}")

    if len(valid_inputs) > 1:
        print(f"\n{'='*50}")
        print(f"Batch complete: {successes}/{len(valid_inputs)} files")
        print(f"Total: {total_in:,} -> {total_out:,} bytes")
        if total_in > 0:
            print(f"Reduction: {(1 - total_out/total_in)*100:.1f}%")

    return 0 if successes == len(valid_inputs) else 1


if __name__ == "__main__":
    sys.exit(main())
