"""
CSV parser: read recorded fixes for replay through the recorder.

Expected columns (header row required):
  time (epoch ms), latitude, longitude, accuracy
optional:
  altitude, speed, bearing
"""

import csv
from pathlib import Path
from typing import Iterator

from tracklog.recording.types import Fix
from tracklog.utils.log import get_logger

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("time", "latitude", "longitude", "accuracy")


def _parse_float(value: str | None, default: float = 0.0) -> float:
    if value is None or not value.strip():
        return default
    return float(value.strip())


def iter_fixes(csv_path: str | Path) -> Iterator[Fix]:
    """
    Yield Fix objects from a CSV file, skipping rows that do not parse.

    Parameters
    ----------
    csv_path
        Path to the CSV file.

    Raises
    ------
    KeyError
        If a required column is missing from the header.
    """
    p = Path(csv_path)
    skipped = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or []
        missing = [c for c in REQUIRED_COLUMNS if c not in fieldnames]
        if missing:
            raise KeyError(f"CSV is missing columns {missing}; found {fieldnames}")

        for row in reader:
            try:
                yield Fix(
                    latitude=float(row["latitude"]),
                    longitude=float(row["longitude"]),
                    accuracy=float(row["accuracy"]),
                    time=int(float(row["time"])),
                    altitude=_parse_float(row.get("altitude")),
                    speed=_parse_float(row.get("speed")),
                    bearing=_parse_float(row.get("bearing")),
                )
            except (TypeError, ValueError):
                skipped += 1
                continue
    if skipped:
        logger.warning("Skipped %d malformed rows in %s", skipped, p)
