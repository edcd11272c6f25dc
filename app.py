import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Iterable, Optional

from deal_core.data import DealUploadError, load_deals_upload, prepare_context
from deal_core.filters import ALL, WEEKLY_DEALS_MAX
from deal_core.metrics_brokers import compute_brokers
from deal_core.metrics_lead_sources import compute_lead_sources
from deal_core.metrics_weekly import compute_weekly_thresholds
from deal_core.store import DealStore

alt.data_transformers.disable_max_rows()


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #4c1d95;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f5f3ff;border: 1px solid #ddd6fe;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #5b21b6;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_currency(value: object) -> str:
    if value is None or pd.isna(value):
        return "N/A"
    return f"A${float(value):,.0f}"


def format_percent_columns(df: pd.DataFrame, cols: Iterable[str], decimals: int = 1) -> pd.DataFrame:
    formatted = df.copy()
    for c in cols:
        if c in formatted.columns:
            formatted[c] = formatted[c].apply(lambda v: f"{float(v):.{decimals}f}%" if pd.notna(v) else "")
    return formatted


def format_currency_columns(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    formatted = df.copy()
    for c in cols:
        if c in formatted.columns:
            formatted[c] = formatted[c].apply(format_currency)
    return formatted


def render_chart(spec: Optional[dict]):
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)


# ---------- UI setup ----------
st.set_page_config(page_title="Broker & Lead Source Dashboard", layout="wide")
inject_base_styles()
st.title("Broker & Lead Source Dashboard")
st.caption("Upload a deals export (JSON or Excel) to analyse broker performance and lead sources.")

store = DealStore()
if "deals" not in st.session_state:
    st.session_state["deals"] = store.load()

with st.sidebar:
    st.markdown("### Data")
    uploaded = st.file_uploader("Upload deals", type=["json", "xlsx", "xls"])
    if uploaded is not None and st.session_state.get("_uploaded_name") != uploaded.name:
        try:
            deals = load_deals_upload(uploaded.name, uploaded.getvalue())
        except DealUploadError as exc:
            store.clear()
            st.session_state["deals"] = store.load()
            st.error(str(exc))
        else:
            store.save(deals)
            st.session_state["deals"] = deals
            st.success(f"Loaded {len(deals):,} deals from {uploaded.name}")
        st.session_state["_uploaded_name"] = uploaded.name
    if st.button("Clear data"):
        store.clear()
        st.session_state["deals"] = store.load()
        st.session_state.pop("_uploaded_name", None)

deals: pd.DataFrame = st.session_state["deals"]
if deals.empty:
    st.info("No data available. Upload your data file to start analysing broker performance.")
    st.stop()

base_ctx = prepare_context({}, deals)

with st.sidebar:
    st.markdown("---")
    st.markdown("### Filters")
    selected_broker = st.selectbox("Broker", options=[ALL] + base_ctx["brokers"], index=0)
    selected_year = st.selectbox("Year", options=[ALL] + base_ctx["years"], index=0)
    mode = st.radio("Rank brokers by", ["settled", "conversion"], horizontal=True)

    st.markdown("---")
    with st.expander("Thresholds", expanded=False):
        min_deals = st.number_input("Minimum deals per broker", min_value=0, value=5, step=1)
        settled_rate = st.number_input("Settled rate threshold (%)", min_value=0.0, max_value=100.0, value=20.0, step=1.0)
        conversion_rate = st.number_input("Conversion rate threshold (%)", min_value=0.0, max_value=100.0, value=50.0, step=1.0)
        weekly_deals = st.slider("Weekly deal threshold", min_value=0, max_value=WEEKLY_DEALS_MAX, value=20)
        rate_mode = st.radio("Weekly rate", ["settled", "conversion"], horizontal=True)
    with st.expander("Trend settings", expanded=False):
        rolling_average_mode = st.radio(
            "Rolling average",
            ["always-defined", "full-window-only"],
            help="always-defined plots every day (early points understated); full-window-only hides days without a full window of history.",
        )
        window_days = st.slider("Window (days)", min_value=7, max_value=90, value=30)
        chart_points = st.slider("Points shown", min_value=30, max_value=365, value=90, step=15)

filters = {
    "selected_broker": selected_broker,
    "selected_year": selected_year,
    "mode": mode,
    "rate_mode": rate_mode,
    "rolling_average_mode": rolling_average_mode,
    "window_days": window_days,
    "chart_points": chart_points,
    "thresholds": {
        "min_deals": min_deals,
        "weekly_deals": weekly_deals,
        "settled_rate": settled_rate,
        "conversion_rate": conversion_rate,
    },
}
ctx = prepare_context(filters, deals)
f = ctx["filters"]

chips = [f"Broker: {f.selected_broker}", f"Year: {f.selected_year}", f"Deals: {len(ctx['filtered_deals']):,}"]
st.markdown("<div class='chip-row'>" + "".join(f"<span class='chip'>{c}</span>" for c in chips) + "</div>", unsafe_allow_html=True)

tab_brokers, tab_sources, tab_weekly = st.tabs(["Broker Performance", "Lead Sources", "Weekly Volume"])

with tab_brokers:
    payload = compute_brokers(f, ctx)
    summary = payload["summary"]
    cols = st.columns(4)
    cols[0].metric("Brokers analysed", summary["total_brokers"])
    cols[1].metric("Above settled threshold", summary["above_settled_threshold"])
    cols[2].metric("Above conversion threshold", summary["above_conversion_threshold"])
    cols[3].metric("Avg settled rate", f"{summary['avg_settled_rate']:.1f}%")
    with card(f"Broker performance (minimum {f.thresholds.min_deals} deals)"):
        table = pd.DataFrame(payload["brokers"])
        if table.empty:
            st.info("No brokers meet the minimum deal count.")
        else:
            table = format_currency_columns(table, ["settled_value", "avg_deal_value"])
            table = format_percent_columns(table, ["settled_rate", "conversion_rate"])
            st.dataframe(table, use_container_width=True, hide_index=True)
            render_chart(payload["charts"].get("brokers"))

with tab_sources:
    payload = compute_lead_sources(f, ctx)
    summary = payload["summary"]
    cols = st.columns(4)
    cols[0].metric("Total leads", f"{summary['total_leads']:,}")
    cols[1].metric("Conversion rate", f"{summary['conversion_rate']:.1f}%")
    cols[2].metric("Avg deal value", format_currency(summary["avg_deal_value"]))
    cols[3].metric("Settled deals", f"{summary['settled_deals']:,}")
    with card(f"{f.window_days}-day rolling average ({f.rolling_average_mode})"):
        if payload["charts"].get("rolling_trend"):
            render_chart(payload["charts"]["rolling_trend"])
        else:
            st.info("No dated deals to chart.")
    with card("Conversion by source"):
        sources = pd.DataFrame(payload["sources"])
        if sources.empty:
            st.info("No leads in the current selection.")
        else:
            st.dataframe(format_percent_columns(sources, ["share", "conversion_rate"]), use_container_width=True, hide_index=True)

with tab_weekly:
    payload = compute_weekly_thresholds(f, ctx)
    if f.selected_broker == ALL:
        st.caption("Showing all brokers; pick a broker in the sidebar to focus the weekly view.")
    with card(f"Weeks below vs at/above {f.thresholds.weekly_deals} deals"):
        categories = pd.DataFrame(payload["categories"])
        if categories.empty:
            st.info("No dated deals for the current selection.")
        else:
            st.dataframe(format_percent_columns(categories, ["avg_rate"]), use_container_width=True, hide_index=True)
            render_chart(payload["charts"].get("threshold_categories"))
    with card("Weekly detail"):
        st.dataframe(
            format_percent_columns(pd.DataFrame(payload["weeks"]), ["settled_rate", "conversion_rate"]),
            use_container_width=True,
            hide_index=True,
        )
