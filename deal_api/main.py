from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from deal_api.schemas import DealFiltersModel
from deal_core.data import DealUploadError, load_deals_json, load_deals_upload, prepare_context
from deal_core.filters import DealFilters
from deal_core.metrics_brokers import compute_broker_performance, compute_brokers, filter_by_minimum_deals
from deal_core.metrics_lead_sources import compute_lead_sources
from deal_core.metrics_weekly import compute_weekly_thresholds
from deal_core.store import DealStore

app = FastAPI(title="Deal Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> DealStore:
    return DealStore()


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _page(
    name: str,
    compute: Callable[[DealFilters, Dict[str, Any]], Dict[str, Any]],
    filters: DealFiltersModel,
    store: DealStore,
) -> JSONResponse:
    try:
        ctx = prepare_context(filters.model_dump(), store.load())
        return _json(compute(ctx["filters"], ctx))
    except Exception as exc:
        logger.exception("%s failed", name)
        return _error(exc)


@app.get("/meta/brokers")
def meta_brokers(store: DealStore = Depends(get_store)):
    try:
        ctx = prepare_context({}, store.load())
        return _json({"brokers": ctx["brokers"]})
    except Exception as exc:
        logger.exception("meta_brokers failed")
        return _error(exc)


@app.get("/meta/years")
def meta_years(store: DealStore = Depends(get_store)):
    try:
        ctx = prepare_context({}, store.load())
        return _json({"years": ctx["years"]})
    except Exception as exc:
        logger.exception("meta_years failed")
        return _error(exc)


@app.post("/deals")
async def replace_deals(request: Request, store: DealStore = Depends(get_store)):
    try:
        deals = load_deals_json(await request.body())
    except DealUploadError as exc:
        store.clear()
        return _error(exc, status_code=400)
    store.save(deals)
    return _json({"stored": len(deals)})


@app.post("/deals/upload")
async def upload_deals(file: UploadFile = File(...), store: DealStore = Depends(get_store)):
    try:
        deals = load_deals_upload(file.filename or "", await file.read())
    except DealUploadError as exc:
        logger.info("Rejected upload %s: %s", file.filename, exc)
        store.clear()
        return _error(exc, status_code=400)
    store.save(deals)
    return _json({"stored": len(deals), "filename": file.filename})


@app.delete("/deals")
def clear_deals(store: DealStore = Depends(get_store)):
    store.clear()
    return _json({"stored": 0})


@app.post("/brokers")
def brokers(filters: DealFiltersModel, store: DealStore = Depends(get_store)):
    return _page("brokers", compute_brokers, filters, store)


@app.post("/lead-sources")
def lead_sources(filters: DealFiltersModel, store: DealStore = Depends(get_store)):
    return _page("lead_sources", compute_lead_sources, filters, store)


@app.post("/weekly")
def weekly(filters: DealFiltersModel, store: DealStore = Depends(get_store)):
    return _page("weekly", compute_weekly_thresholds, filters, store)


@app.post("/export/{page}")
def export_page(page: str, filters: DealFiltersModel, store: DealStore = Depends(get_store)):
    ctx = prepare_context(filters.model_dump(), store.load())
    f: DealFilters = ctx["filters"]

    filename = f"{page}.csv"
    if page == "brokers":
        perf = compute_broker_performance(ctx["filtered_deals"], f.mode)
        export_df = filter_by_minimum_deals(perf, f.thresholds.min_deals)
    elif page == "lead-sources":
        export_df = pd.DataFrame(compute_lead_sources(f, ctx)["series"])
    elif page == "weekly":
        export_df = pd.DataFrame(compute_weekly_thresholds(f, ctx)["weeks"])
    elif page == "deals":
        export_df = ctx["filtered_deals"]
    else:
        export_df = pd.DataFrame()

    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
