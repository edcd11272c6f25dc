from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

import pandas as pd

from deal_core.data import normalize_deals

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1]
DEFAULT_STORE_PATH = DATA_DIR / "dashboard-deals.json"


def default_store_path() -> Path:
    return Path(os.environ.get("DEAL_STORE_PATH") or DEFAULT_STORE_PATH)


class DealStore:
    """Holds the current deal set on disk for whoever owns the dashboard session.

    The aggregation functions never read or write the store; callers load a
    DataFrame from it and pass that in.
    """

    def __init__(self, path: Optional[Path | str] = None):
        self.path = Path(path) if path is not None else default_store_path()

    def load(self) -> pd.DataFrame:
        if not self.path.exists():
            return normalize_deals([])
        try:
            records = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Deal store at %s is unreadable; starting empty", self.path, exc_info=True)
            return normalize_deals([])
        if not isinstance(records, list):
            logger.warning("Deal store at %s does not hold a list; starting empty", self.path)
            return normalize_deals([])
        deals = normalize_deals(records)
        logger.info("Loaded %d deals from %s", len(deals), self.path)
        return deals

    def save(self, deals: pd.DataFrame) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(deals.to_json(orient="records", date_format="iso"), encoding="utf-8")
        logger.info("Saved %d deals to %s", len(deals), self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info("Cleared deal store at %s", self.path)
