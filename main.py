#!/usr/bin/env python3
"""
Receipt Extraction Pipeline - Main Entry Point.

This is the main entry point for the receipt extraction pipeline.
It provides both a command-line interface and programmatic access
to the pipeline.

Usage:
    Command Line:
        python main.py --input receipt.jpg
        python main.py --input receipt.png --output result.json --level quick

    Python:
        from main import run_extraction
        result = run_extraction("receipt.jpg")

Author: ML Engineering Team
Version: 1.0.0
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import project modules
from config import ConfigurationManager
from receipt_pipeline.utils.logger import LOGGER_NAMESPACE, setup_logger_from_config, get_logger
from receipt_pipeline.utils.exceptions import ReceiptPipelineError


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Receipt Extraction Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Process a receipt photo:
        python main.py --input receipt.jpg

    Save the result and use the quick preprocessing preset:
        python main.py --input receipt.png --output result.json --level quick
        """
    )

    # Input/Output arguments
    parser.add_argument(
        "--input", "-i",
        type=str,
        required=True,
        help="Receipt image (JPEG, PNG or WebP)"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write the JSON result to this file instead of stdout"
    )

    # Processing options
    parser.add_argument(
        "--level", "-l",
        choices=["minimal", "quick", "full"],
        default=None,
        help="Preprocessing level (default: preprocessing.level from settings)"
    )

    parser.add_argument(
        "--no-validate",
        action="store_true",
        help="Skip image quality validation"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to custom configuration file"
    )

    # Logging options
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Initialize configuration and logging.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Initialized configuration manager.
    """
    config = ConfigurationManager(args.config)

    logger = setup_logger_from_config()

    if args.debug:
        logging.getLogger(LOGGER_NAMESPACE).setLevel(logging.DEBUG)
        for handler in logging.getLogger(LOGGER_NAMESPACE).handlers:
            handler.setLevel(logging.DEBUG)

    logger.info("=" * 60)
    logger.info("RECEIPT EXTRACTION PIPELINE")
    logger.info("=" * 60)
    logger.info(f"Version: {config.get('project.version', '1.0.0')}")
    logger.info(f"Input: {args.input}")

    return config


def run_extraction(
    input_path: str,
    preprocessing_level: Optional[str] = None,
    validate: Optional[bool] = None
) -> Dict[str, Any]:
    """
    Run the receipt pipeline on one image file.

    Args:
        input_path: Path to the receipt image.
        preprocessing_level: 'minimal', 'quick' or 'full'.
        validate: Run quality validation (defaults to settings).

    Returns:
        Result dictionary (parsed receipt, confidence analysis, audit data).

    Raises:
        ReceiptPipelineError: If any stage fails.

    Example:
        >>> result = run_extraction("receipt.jpg")
        >>> print(result['parsed_receipt']['total'])
    """
    # Import pipeline components after configuration is loaded
    from receipt_pipeline.pipeline import ReceiptPipeline

    with ReceiptPipeline(preprocessing_level=preprocessing_level, validate=validate) as pipeline:
        return pipeline.process_file(input_path).to_dict()


def write_output(payload: Dict[str, Any], output_path: Optional[str]) -> None:
    """Print the JSON payload or write it to a file."""
    text = json.dumps(payload, indent=2, ensure_ascii=False)

    if output_path is None:
        print(text)
        return

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + "\n", encoding="utf-8")
    get_logger(__name__).info(f"Result written to: {path}")


def main(argv: Optional[list] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 for success, 1 for pipeline errors, 130 on interrupt).
    """
    try:
        args = parse_arguments(argv)
        initialize_system(args)
        logger = get_logger(__name__)

        try:
            result = run_extraction(
                input_path=args.input,
                preprocessing_level=args.level,
                validate=False if args.no_validate else None
            )
        except ReceiptPipelineError as e:
            logger.error(f"Extraction failed ({e.kind}): {e.message}")
            write_output(e.to_dict(), args.output)
            return 1

        write_output(result, args.output)

        confidence = result['confidence']
        logger.info("=" * 60)
        logger.info(
            f"Extraction complete. Status: {confidence['status']} "
            f"(overall {confidence['overall']:.2f})"
        )
        logger.info("=" * 60)

        return 0

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130

    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if "--debug" in sys.argv:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
