"""CLI script for getting cart suggestions.

Useful for testing and evaluation. Loads the persisted rule snapshot, runs
the merge engine for a cart and prints the suggestions to the console.
"""

import argparse
import asyncio
import json
import logging
import sys

from basketrec.api.deps import build_default_service
from basketrec.config import get_settings
from basketrec.exceptions import BasketRecException
from basketrec.recommender.merge import VIEW_CART, VIEW_DETAIL

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Get menu item suggestions for a cart",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/suggest_cli.py burger
  python scripts/suggest_cli.py burger fries --user-id u001
  python scripts/suggest_cli.py burger --view detail --json
  python scripts/suggest_cli.py --user-id u001
        """
    )

    parser.add_argument(
        "cart_item_ids",
        nargs="*",
        help="Item ids currently in the cart (empty for personalized only)"
    )
    parser.add_argument(
        "--user-id",
        type=str,
        default=None,
        help="User to personalize for"
    )
    parser.add_argument(
        "--view",
        type=str,
        choices=[VIEW_CART, VIEW_DETAIL],
        default=VIEW_CART,
        help="Result cap: cart (6) or detail (3) (default: cart)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON"
    )

    args = parser.parse_args()

    service = build_default_service(get_settings())
    if service.store.is_empty():
        logger.warning("No rules loaded; run scripts/refresh_rules.py first")

    try:
        response = asyncio.run(
            service.engine.recommend(args.cart_item_ids, args.user_id, args.view)
        )
    except BasketRecException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        output = {
            "cart_item_ids": args.cart_item_ids,
            "user_id": args.user_id,
            "view": args.view,
            "used_fallback": response.used_fallback,
            "suggestions": [s.to_dict() for s in response.suggestions],
        }
        print(json.dumps(output, indent=2))
        return

    cart = ", ".join(args.cart_item_ids) or "(empty)"
    print(f"\nSuggestions for cart: {cart}")
    if args.user_id:
        print(f"User: {args.user_id}")
    print("=" * 50)

    if not response.suggestions:
        print("No suggestions available.")
    for i, suggestion in enumerate(response.suggestions, 1):
        print(f"{i:2d}. {suggestion.id:<20} {suggestion.source.value:<13} {suggestion.score:.3f}")
        if suggestion.rationale and i == 1:
            print(f"    {suggestion.rationale}")

    if response.used_fallback:
        print("\nAI suggestions unavailable; showing rule-based picks.")
    print()


if __name__ == "__main__":
    main()
