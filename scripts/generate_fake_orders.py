"""Generate fake restaurant orders for testing and development.

This module creates a synthetic menu, a ledger of order lines with planted
item combos (so association rules have something to find), and the per-user
purchase statistics derived from the completed orders.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_orders.py

    Or import and use programmatically:
        from scripts.generate_fake_orders import generate_fake_orders
        orders_df = generate_fake_orders(num_orders=200)
"""

import random
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

# Default configuration constants
DEFAULT_NUM_USERS = 40
DEFAULT_NUM_ORDERS = 600
DEFAULT_DAYS_BACK = 90
DEFAULT_COMBO_RATE = 0.6
DEFAULT_CANCEL_RATE = 0.05
SECONDS_PER_DAY = 86400

MENU = [
    ("burger", "Classic Burger", "mains", 11.5),
    ("cheeseburger", "Cheeseburger", "mains", 12.5),
    ("chicken-wrap", "Chicken Wrap", "mains", 10.0),
    ("veggie-bowl", "Veggie Bowl", "mains", 10.5),
    ("fries", "French Fries", "sides", 4.0),
    ("onion-rings", "Onion Rings", "sides", 4.5),
    ("side-salad", "Side Salad", "sides", 4.5),
    ("cola", "Cola", "drinks", 2.5),
    ("lemonade", "Lemonade", "drinks", 3.0),
    ("iced-tea", "Iced Tea", "drinks", 3.0),
    ("brownie", "Chocolate Brownie", "desserts", 5.0),
    ("sundae", "Ice Cream Sundae", "desserts", 5.5),
]

# Items frequently ordered together
COMBOS = [
    ("burger", "fries", "cola"),
    ("cheeseburger", "onion-rings", "cola"),
    ("chicken-wrap", "side-salad", "lemonade"),
    ("veggie-bowl", "iced-tea"),
    ("burger", "sundae"),
]


def generate_menu() -> pd.DataFrame:
    """Menu catalog with ``id, name, category, price, is_active`` columns."""
    return pd.DataFrame(
        [
            {"id": item_id, "name": name, "category": category, "price": price, "is_active": True}
            for item_id, name, category, price in MENU
        ]
    )


def _basket(combo_rate: float) -> List[str]:
    menu_ids = [item[0] for item in MENU]
    if random.random() < combo_rate:
        items = list(random.choice(COMBOS))
    else:
        items = [random.choice(menu_ids)]
    # Occasionally add an unrelated item
    if random.random() < 0.3:
        items.append(random.choice(menu_ids))
    return items


def generate_fake_orders(
    num_users: int = DEFAULT_NUM_USERS,
    num_orders: int = DEFAULT_NUM_ORDERS,
    combo_rate: float = DEFAULT_COMBO_RATE,
    cancel_rate: float = DEFAULT_CANCEL_RATE,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> pd.DataFrame:
    """Generate synthetic order lines.

    Args:
        num_users: Number of unique users to simulate. Must be positive.
        num_orders: Number of orders to generate. Must be positive.
        combo_rate: Probability that an order follows one of the planted
            combos instead of a single random item.
        cancel_rate: Probability that an order is cancelled. Cancelled
            orders are written to the ledger but never mined.
        start_date: Start of the order time range. Defaults to 90 days
            before ``end_date``.
        end_date: End of the order time range. Defaults to now.

    Returns:
        DataFrame with one row per order line and columns ``order_id``,
        ``user_id``, ``item_id``, ``quantity``, ``status`` and ``created_at``,
        sorted by ``created_at``.

    Raises:
        ValueError: If a count is non-positive, a rate is outside [0, 1] or
            start_date is not before end_date.
    """
    if num_users <= 0 or num_orders <= 0:
        raise ValueError("num_users and num_orders must be positive")
    if not 0.0 <= combo_rate <= 1.0 or not 0.0 <= cancel_rate <= 1.0:
        raise ValueError("combo_rate and cancel_rate must be within [0, 1]")

    if end_date is None:
        end_date = datetime.now()
    if start_date is None:
        start_date = end_date - timedelta(days=DEFAULT_DAYS_BACK)
    if start_date >= end_date:
        raise ValueError("start_date must be before end_date")

    days_range = max(1, (end_date - start_date).days)
    lines = []

    for order_number in range(1, num_orders + 1):
        order_id = f"o{order_number:05d}"
        user_id = f"u{random.randint(1, num_users):03d}"
        status = "cancelled" if random.random() < cancel_rate else "completed"
        created_at = start_date + timedelta(
            days=random.randrange(days_range), seconds=random.randrange(SECONDS_PER_DAY)
        )

        for item_id in _basket(combo_rate):
            lines.append(
                {
                    "order_id": order_id,
                    "user_id": user_id,
                    "item_id": item_id,
                    "quantity": random.randint(1, 2),
                    "status": status,
                    "created_at": created_at,
                }
            )

    df = pd.DataFrame(lines)
    return df.sort_values(["created_at", "order_id"]).reset_index(drop=True)


def derive_user_stats(orders_df: pd.DataFrame) -> pd.DataFrame:
    """Per-user purchase counts and last purchase time from completed orders."""
    completed = orders_df[orders_df["status"] == "completed"]
    stats = (
        completed.groupby(["user_id", "item_id"])
        .agg(purchases=("order_id", "nunique"), last_purchased_at=("created_at", "max"))
        .reset_index()
    )
    return stats


def main() -> None:
    """Generate menu, orders and user stats CSVs under ``data/``."""
    print(f"Generating {DEFAULT_NUM_ORDERS} fake orders...")
    print(f"Users: {DEFAULT_NUM_USERS}, Menu items: {len(MENU)}")

    try:
        orders_df = generate_fake_orders()
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    menu_df = generate_menu()
    stats_df = derive_user_stats(orders_df)

    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)

    outputs: List[Tuple[str, pd.DataFrame]] = [
        ("menu.csv", menu_df),
        ("orders.csv", orders_df),
        ("user_item_stats.csv", stats_df),
    ]
    for filename, df in outputs:
        df.to_csv(data_dir / filename, index=False)
        print(f"Saved {len(df)} rows to: {data_dir / filename}")

    print(f"\nData preview:")
    print(orders_df.head(10))
    print(f"\nData summary:")
    print(f"  Order lines: {len(orders_df)}")
    print(f"  Orders: {orders_df['order_id'].nunique()}")
    print(f"  Completed orders: {orders_df.loc[orders_df['status'] == 'completed', 'order_id'].nunique()}")
    print(f"  Unique users: {orders_df['user_id'].nunique()}")
    print(f"  Date range: {orders_df['created_at'].min()} to {orders_df['created_at'].max()}")


if __name__ == "__main__":
    main()
