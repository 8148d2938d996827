"""Utility functions for the recommendation system.

This module provides helpers for reading the CSV files behind the bundled
ledger/catalog/user-stat collaborators and for persisting recommendation
snapshots to disk.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

import joblib
import pandas as pd

from basketrec.recommender.models import RecommendationEdge
from basketrec.recommender.store import EdgeSnapshot

# Configure module logger
logger = logging.getLogger(__name__)

# Snapshot artifact filename
SNAPSHOT_FILENAME = "recommendations.joblib"


def read_csv_checked(csv_path: str, required_columns: Iterable[str]) -> pd.DataFrame:
    """Load a CSV file and validate that it carries the required columns.

    Args:
        csv_path: Path to the CSV file.
        required_columns: Column names that must be present.

    Returns:
        The loaded DataFrame. It may be empty; an empty file with a valid
        header is a legitimate "no data yet" state.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns.

    Example:
        >>> df = read_csv_checked("data/orders.csv", ["order_id", "item_id"])
        >>> print(f"Loaded {len(df)} order lines")
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading CSV from {csv_path}")
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False, na_values=[""])

    required = set(required_columns)
    if not required.issubset(df.columns):
        missing = required - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    logger.info(f"Loaded {len(df)} rows from {csv_path}")
    return df


def get_snapshot_path(snapshot_dir: str, filename: str = SNAPSHOT_FILENAME) -> Path:
    """Get the file path of a persisted snapshot without loading it."""
    return Path(snapshot_dir) / filename


def check_snapshot_exists(snapshot_dir: str) -> bool:
    """Check if a persisted recommendation snapshot exists."""
    return get_snapshot_path(snapshot_dir).exists()


def save_snapshot(
    snapshot: EdgeSnapshot,
    output_dir: str,
    filename: str = SNAPSHOT_FILENAME,
) -> Path:
    """Save a recommendation snapshot to disk.

    The file is written under a temporary name and moved into place with
    ``os.replace``, so a concurrent reader either sees the previous file or
    the new one.

    Args:
        snapshot: Snapshot to persist.
        output_dir: Directory path where the snapshot will be saved.
        filename: Snapshot filename (default: "recommendations.joblib").

    Returns:
        Path of the written file.

    Raises:
        OSError: If unable to create output directory or save the file.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    target = output_path / filename
    staging = output_path / f".{filename}.tmp"

    payload = {
        "version": snapshot.version,
        "generated_at": snapshot.generated_at,
        "total_orders": snapshot.total_orders,
        "edges": [edge.as_row() for edge in snapshot.edges],
    }
    joblib.dump(payload, staging)
    os.replace(staging, target)

    logger.info(
        f"Saved recommendation snapshot to {target}",
        extra={"version": snapshot.version, "edges": len(snapshot)},
    )
    return target


def load_snapshot(
    snapshot_dir: str,
    filename: str = SNAPSHOT_FILENAME,
) -> Optional[EdgeSnapshot]:
    """Load a persisted recommendation snapshot.

    Returns:
        The snapshot, or None when nothing has been persisted yet.
    """
    snapshot_file = get_snapshot_path(snapshot_dir, filename)
    if not snapshot_file.exists():
        logger.info(f"No recommendation snapshot at {snapshot_file}")
        return None

    payload = joblib.load(snapshot_file)
    edges = [RecommendationEdge(**row) for row in payload["edges"]]
    snapshot = EdgeSnapshot.build(
        edges,
        version=payload["version"],
        generated_at=payload.get("generated_at"),
        total_orders=payload.get("total_orders", 0),
    )

    logger.info(
        f"Loaded recommendation snapshot from {snapshot_file}",
        extra={"version": snapshot.version, "edges": len(snapshot)},
    )
    return snapshot
