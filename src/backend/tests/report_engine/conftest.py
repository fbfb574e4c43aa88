import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import pytest

from adapters.trial_balance.movements import movements_frame_from_records
from common.report_engine.expressions import clear_parse_cache


_ROW_DEFAULTS = {
    "year": 2024,
    "period": 1,
    "code1": "700",
    "name1": "Revenue",
    "code2": "",
    "name2": "",
    "code3": "",
    "name3": "",
    "statement_type": "income",
    "account_code": "",
    "movement_amount": 0.0,
}


@pytest.fixture(autouse=True)
def _fresh_parse_cache():
    clear_parse_cache()
    yield
    clear_parse_cache()


@pytest.fixture
def make_movements():
    def _make(rows):
        return movements_frame_from_records([{**_ROW_DEFAULTS, **row} for row in rows])

    return _make


@pytest.fixture
def income_movements(make_movements):
    """Two years of a small income statement: revenue 700, cogs 710, opex 800."""
    return make_movements(
        [
            {"year": 2024, "period": 1, "code1": "700", "movement_amount": 1000},
            {"year": 2024, "period": 2, "code1": "700", "movement_amount": 1500},
            {"year": 2024, "period": 1, "code1": "710", "name1": "COGS", "movement_amount": -400},
            {"year": 2024, "period": 3, "code1": "800", "name1": "Opex", "movement_amount": -50},
            {"year": 2025, "period": 1, "code1": "700", "movement_amount": 2000},
            {"year": 2025, "period": 2, "code1": "710", "name1": "COGS", "movement_amount": -600},
            {"year": 2025, "period": 6, "code1": "800", "name1": "Opex", "movement_amount": -70},
        ]
    )


@pytest.fixture
def income_variables():
    return {
        "revenue": {"filter": {"code1": "700"}, "aggregate": "sum"},
        "cogs": {"filter": {"code1": "710"}, "aggregate": "sum"},
        "gross_profit": {"expression": "revenue + cogs"},
        "opex": {"filter": {"code1": "800"}, "aggregate": "sum"},
        "net_income": {"expression": "gross_profit + opex"},
    }
