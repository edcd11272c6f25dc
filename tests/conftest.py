import pandas as pd
import pytest

from deal_core.data import normalize_deals
from tests.factories import generate_sample_deals


@pytest.fixture
def sample_deals() -> pd.DataFrame:
    return normalize_deals(generate_sample_deals())


@pytest.fixture
def tmp_store_path(tmp_path):
    return tmp_path / "deals.json"
