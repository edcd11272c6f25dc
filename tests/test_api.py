"""Tests for the dashboard API."""

import io
import json

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from deal_api.main import app, get_store
from deal_core.store import DealStore
from tests.factories import generate_sample_deals, make_deal


@pytest.fixture
def store(tmp_store_path):
    return DealStore(tmp_store_path)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def loaded(client):
    resp = client.post("/deals", content=json.dumps(generate_sample_deals()))
    assert resp.status_code == 200
    return client


class TestDealsEndpoints:
    def test_post_deals_stores_records(self, client, store):
        resp = client.post("/deals", content=json.dumps({"deals": [make_deal(deal_id="a"), make_deal(deal_id="b")]}))
        assert resp.status_code == 200
        assert resp.json() == {"stored": 2}
        assert store.load()["deal_id"].tolist() == ["a", "b"]

    def test_bad_structure_is_400_and_clears_store(self, client, store):
        client.post("/deals", content=json.dumps([make_deal()]))
        resp = client.post("/deals", content=json.dumps({"rows": []}))
        assert resp.status_code == 400
        assert resp.json()["type"] == "DealUploadError"
        assert store.load().empty

    def test_upload_excel(self, client, store):
        buf = io.BytesIO()
        pd.DataFrame([make_deal(deal_id="x", broker_name="Alice")]).to_excel(buf, index=False)
        resp = client.post(
            "/deals/upload",
            files={"file": ("deals.xlsx", buf.getvalue(), "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
        )
        assert resp.status_code == 200
        assert resp.json()["stored"] == 1
        assert store.load()["broker_name"].tolist() == ["Alice"]

    def test_upload_unsupported_format(self, client):
        resp = client.post("/deals/upload", files={"file": ("deals.csv", b"a,b\n", "text/csv")})
        assert resp.status_code == 400
        assert "Unsupported file format" in resp.json()["error"]

    def test_delete_clears(self, loaded, store):
        assert loaded.delete("/deals").json() == {"stored": 0}
        assert store.load().empty


class TestMetaEndpoints:
    def test_brokers_and_years(self, loaded):
        assert loaded.get("/meta/brokers").json() == {"brokers": ["Alice Chen", "Ben Wright"]}
        assert loaded.get("/meta/years").json() == {"years": ["2024"]}

    def test_empty_store(self, client):
        assert client.get("/meta/brokers").json() == {"brokers": []}


class TestPageEndpoints:
    def test_brokers(self, loaded):
        resp = loaded.post("/brokers", json={"mode": "conversion", "thresholds": {"min_deals": 1}})
        assert resp.status_code == 200
        body = resp.json()
        rates = [b["conversion_rate"] for b in body["brokers"]]
        assert rates == sorted(rates, reverse=True)
        assert body["filters"]["mode"] == "conversion"

    def test_lead_sources_full_window_serializes_gaps_as_null(self, loaded):
        resp = loaded.post("/lead-sources", json={"rolling_average_mode": "full-window-only", "chart_points": 500})
        assert resp.status_code == 200
        series = resp.json()["series"]
        assert series[0]["settled_deals_30day_avg"] is None
        assert series[-1]["settled_deals_30day_avg"] is not None

    def test_weekly_for_one_broker(self, loaded):
        resp = loaded.post("/weekly", json={"selected_broker": "Ben Wright", "thresholds": {"weekly_deals": 8}})
        assert resp.status_code == 200
        body = resp.json()
        assert body["broker"] == "Ben Wright"
        assert {c["category"] for c in body["categories"]} <= {"below", "at_or_above"}

    def test_invalid_mode_is_rejected_by_schema(self, loaded):
        assert loaded.post("/brokers", json={"mode": "revenue"}).status_code == 422

    def test_pages_work_with_no_data(self, client):
        for path in ["/brokers", "/lead-sources", "/weekly"]:
            assert client.post(path, json={}).status_code == 200

    def test_export_brokers_csv(self, loaded):
        resp = loaded.post("/export/brokers", json={"thresholds": {"min_deals": 0}})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.text.splitlines()[0].startswith("broker_name,total_deals")
