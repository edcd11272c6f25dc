from __future__ import annotations

import io
import json
import logging
import numbers
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd

from deal_core.filters import ALL, DealFilters, normalize_filters

logger = logging.getLogger(__name__)

STAGE_COLUMNS = [
    "1. Application",
    "2. Assessment",
    "3. Approval",
    "4. Loan Document",
    "5. Settlement Queue",
    "6. Settled",
]
SETTLED_COLUMN = "6. Settled"
SETTLED_STATUS = "6. Settled"
SETTLEMENT_FLAG_COLUMNS = ["2025 Settlement", "2024 Settlement"]

REDNOTE_COLUMN = "From Rednote?"
LIFEX_COLUMN = "From LifeX?"
LEAD_SOURCE_COLUMNS = [REDNOTE_COLUMN, LIFEX_COLUMN]

DATE_COLUMNS = ["latest_date", "created_date"]

DEAL_COLUMNS = (
    ["deal_id", "deal_name", "broker_name", "status", "deal_value", "Enquiry Leads", "Opportunity"]
    + STAGE_COLUMNS
    + SETTLEMENT_FLAG_COLUMNS
    + ["Lost date", "lost reason"]
    + DATE_COLUMNS
    + LEAD_SOURCE_COLUMNS
)

DealPredicate = Callable[[pd.DataFrame], pd.Series]

_NON_NUMERIC = re.compile(r"[^0-9.\-]+")


class DealUploadError(ValueError):
    """Raised when an uploaded deal file cannot be decoded."""


# ---------- field helpers ----------
def is_blank(value: object) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        return False
    return str(value).strip() == ""


def filled_mask(df: pd.DataFrame, col: str) -> pd.Series:
    """True where ``col`` holds a non-empty trimmed value."""
    if col not in df.columns:
        return pd.Series(False, index=df.index)
    series = df[col]
    return series.notna() & (series.astype(str).str.strip() != "")


def settled_mask(df: pd.DataFrame) -> pd.Series:
    return filled_mask(df, SETTLED_COLUMN)


def converted_mask(df: pd.DataFrame) -> pd.Series:
    mask = pd.Series(False, index=df.index)
    for col in STAGE_COLUMNS + SETTLEMENT_FLAG_COLUMNS:
        mask = mask | filled_mask(df, col)
    return mask


def settled_status_mask(df: pd.DataFrame) -> pd.Series:
    if "status" not in df.columns:
        return pd.Series(False, index=df.index)
    return df["status"].astype(str) == SETTLED_STATUS


def lead_source_mask(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series(False, index=df.index)
    return df[col].astype(str) == "Yes"


def rednote_mask(df: pd.DataFrame) -> pd.Series:
    return lead_source_mask(df, REDNOTE_COLUMN)


def lifex_mask(df: pd.DataFrame) -> pd.Series:
    return lead_source_mask(df, LIFEX_COLUMN)


def deal_values(df: pd.DataFrame) -> pd.Series:
    if "deal_value" not in df.columns:
        return pd.Series(0.0, index=df.index)
    return pd.to_numeric(df["deal_value"], errors="coerce").fillna(0.0).astype(float)


# ---------- dates ----------
def parse_deal_date(value: object) -> Optional[date]:
    """Parse a date-like value to a calendar day; None when unparseable."""
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    ts = pd.to_datetime(str(value).strip(), errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.date()


def deal_dates(df: pd.DataFrame) -> pd.Series:
    """Calendar day per deal: ``latest_date`` when present, else ``created_date``."""
    if df.empty:
        return pd.Series([], index=df.index, dtype=object)
    latest = df["latest_date"] if "latest_date" in df.columns else pd.Series(None, index=df.index, dtype=object)
    created = df["created_date"] if "created_date" in df.columns else pd.Series(None, index=df.index, dtype=object)
    raw = [c if is_blank(l) else l for l, c in zip(latest.tolist(), created.tolist())]
    return pd.Series([parse_deal_date(v) for v in raw], index=df.index, dtype=object)


def with_deal_dates(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["deal_date"] = deal_dates(out)
    return out


def available_brokers(deals: pd.DataFrame) -> List[str]:
    if deals.empty or "broker_name" not in deals.columns:
        return []
    return sorted(deals["broker_name"].dropna().astype(str).unique().tolist())


def available_years(deals: pd.DataFrame) -> List[str]:
    years = {str(d.year) for d in deal_dates(deals) if d is not None}
    return sorted(years)


# ---------- upload decoding ----------
def _coerce_deal_value(value: object) -> float:
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        try:
            return float(cleaned)
        except ValueError:
            return 0.0
    if isinstance(value, bool) or not isinstance(value, numbers.Number):
        return 0.0
    return 0.0 if pd.isna(value) else float(value)


def normalize_deals(records: Iterable[Dict[str, Any]] | pd.DataFrame) -> pd.DataFrame:
    df = records.copy() if isinstance(records, pd.DataFrame) else pd.DataFrame(list(records))
    df.columns = [str(c).strip() for c in df.columns]
    for col in DEAL_COLUMNS:
        if col not in df.columns:
            df[col] = None
    df = df.astype(object).where(df.notna(), None)

    if not df.empty:
        positions = range(1, len(df) + 1)
        df["deal_id"] = [f"excel_{i}" if is_blank(v) else str(v) for i, v in zip(positions, df["deal_id"])]
        df["deal_name"] = [f"Deal {i}" if is_blank(v) else str(v) for i, v in zip(positions, df["deal_name"])]
        df["broker_name"] = ["Unknown Broker" if is_blank(v) else str(v) for v in df["broker_name"]]
        df["status"] = ["Unknown" if is_blank(v) else str(v) for v in df["status"]]
    df["deal_value"] = [_coerce_deal_value(v) for v in df["deal_value"]]
    df["deal_value"] = df["deal_value"].astype(float)
    return df.reset_index(drop=True)


def load_deals_json(content: bytes | str) -> pd.DataFrame:
    try:
        payload = json.loads(content)
    except (TypeError, ValueError) as exc:
        raise DealUploadError(f"Invalid JSON: {exc}") from exc

    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict) and isinstance(payload.get("deals"), list):
        records = payload["deals"]
    else:
        raise DealUploadError("Invalid JSON structure.")
    if not all(isinstance(r, dict) for r in records):
        raise DealUploadError("Invalid JSON structure.")
    return normalize_deals(records)


def _excel_cell(value: object) -> object:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def load_deals_excel(content: bytes) -> pd.DataFrame:
    try:
        raw = pd.read_excel(io.BytesIO(content), sheet_name=0, header=0, dtype=object)
    except Exception as exc:
        raise DealUploadError(f"Could not read Excel file: {exc}") from exc

    raw.columns = [str(c).strip() for c in raw.columns]
    before = len(raw)
    raw = raw.dropna(how="all")
    if len(raw) < before:
        logger.info("Dropped %d empty Excel rows", before - len(raw))
    raw = raw.apply(lambda col: col.map(_excel_cell))
    return normalize_deals(raw)


def load_deals_upload(filename: str, content: bytes) -> pd.DataFrame:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext == "json":
        deals = load_deals_json(content)
    elif ext in {"xlsx", "xls"}:
        deals = load_deals_excel(content)
    else:
        raise DealUploadError("Unsupported file format. Please upload a JSON or Excel (.xlsx/.xls) file.")
    logger.info("Decoded %d deals from %s", len(deals), filename)
    return deals


# ---------- context ----------
def apply_filters(deals: pd.DataFrame, filters: DealFilters) -> pd.DataFrame:
    """Restrict the deal set to the selected broker and deal-date year."""
    if deals.empty:
        return deals.copy()
    out = deals
    if filters.selected_broker != ALL and "broker_name" in out.columns:
        out = out[out["broker_name"].astype(str) == filters.selected_broker]
    if filters.selected_year != ALL:
        years = deal_dates(out).map(lambda d: str(d.year) if d is not None else None)
        out = out[years == filters.selected_year]
    return out.copy()


def prepare_context(filters: dict | DealFilters, deals: pd.DataFrame) -> Dict[str, object]:
    deals = deals if deals is not None else pd.DataFrame(columns=DEAL_COLUMNS)
    brokers = available_brokers(deals)
    years = available_years(deals)
    filt = (
        filters
        if isinstance(filters, DealFilters)
        else normalize_filters(filters, available_brokers=brokers, available_years=years)
    )
    return {
        "filters": filt,
        "deals": deals,
        "filtered_deals": apply_filters(deals, filt),
        "brokers": brokers,
        "years": years,
    }
