"""Command-line interface for refreshing association rules.

This script mines completed orders from a CSV ledger, publishes the resulting
recommendation edges and persists the snapshot the API loads at startup.

Example:
    Refresh with default thresholds:
        $ python scripts/refresh_rules.py data/orders.csv

    Refresh with custom thresholds:
        $ python scripts/refresh_rules.py data/orders.csv \\
            --output-dir models/production \\
            --min-support 0.02 \\
            --min-confidence 0.2
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from basketrec.config import get_settings
from basketrec.exceptions import DataError
from basketrec.recommender.rules import RuleGenerator
from basketrec.recommender.sources import CsvOrderLedger
from basketrec.recommender.store import RecommendationStore
from basketrec.recommender.utils import load_snapshot


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_arguments() -> argparse.Namespace:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Mine association rules from completed orders and publish them.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Refresh with default settings
  python scripts/refresh_rules.py data/orders.csv

  # Stricter thresholds, verbose logging
  python scripts/refresh_rules.py data/orders.csv --min-support 0.05 --verbose
        """,
    )

    parser.add_argument(
        "csv_path",
        type=str,
        nargs="?",
        default=settings.ORDERS_CSV_PATH,
        help="CSV of order lines with columns: order_id, item_id[, status] "
        f"(default: {settings.ORDERS_CSV_PATH})",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=settings.SNAPSHOT_DIR,
        help=f"Directory where the snapshot is saved (default: {settings.SNAPSHOT_DIR})",
    )
    parser.add_argument(
        "--min-support",
        type=float,
        default=settings.MIN_SUPPORT,
        help=f"Minimum fraction of orders containing a pair (default: {settings.MIN_SUPPORT})",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=settings.MIN_CONFIDENCE,
        help=f"Minimum P(B | A) for an edge A -> B (default: {settings.MIN_CONFIDENCE})",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the refresh outcome as JSON",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point for the refresh script.

    Returns:
        Exit code: 0 on success (including "nothing to publish"), 1 on error.
    """
    try:
        args = parse_arguments()

        setup_logging(verbose=args.verbose)
        logger = logging.getLogger(__name__)

        # Start from the persisted snapshot so an empty run keeps it
        store = RecommendationStore()
        previous = load_snapshot(args.output_dir)
        if previous is not None:
            store.restore(previous)

        generator = RuleGenerator(
            ledger=CsvOrderLedger(args.csv_path),
            store=store,
            min_support=args.min_support,
            min_confidence=args.min_confidence,
            snapshot_dir=args.output_dir,
        )
        result = generator.refresh()

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
            return 0

        logger.info("=" * 70)
        logger.info("Refresh Summary")
        logger.info("=" * 70)
        logger.info(f"Status:            {result.status}")
        logger.info(f"Orders analyzed:   {result.total_orders}")
        logger.info(f"Unique items:      {result.unique_items}")
        logger.info(f"Item pairs:        {result.item_pairs}")
        logger.info(f"Skipped records:   {result.skipped_records}")
        logger.info(f"Edges published:   {result.edges_published}")
        logger.info(f"Store version:     {result.store_version}")
        if result.persisted:
            logger.info(f"Snapshot saved to: {Path(args.output_dir).absolute()}")
        for rule in result.top_rules:
            logger.info(
                f"  {rule['item_id']} -> {rule['recommended_item_id']}: "
                f"support={rule['support']} confidence={rule['confidence']} lift={rule['lift']}"
            )
        logger.info("=" * 70)
        logger.info(result.message)
        return 0

    except DataError as e:
        logging.error(f"Data error: {e.message}")
        return 1
    except ValueError as e:
        logging.error(f"Validation error: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Refresh interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
