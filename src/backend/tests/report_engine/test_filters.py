import pytest

from common.report_engine.errors import FilterValidationError, ReportEngineError
from common.report_engine.filters import (
    apply_filter,
    apply_filter_safe,
    combine_filters,
    compile_filter,
    filter_by_field,
    validate_filter,
)


@pytest.fixture
def coded_movements(make_movements):
    return make_movements(
        [
            {"code1": "700", "code2": "7000", "statement_type": "income", "movement_amount": 10},
            {"code1": "710", "code2": "7100", "statement_type": "income", "movement_amount": 20},
            {"code1": "750", "code2": "7500", "statement_type": "income", "movement_amount": 30},
            {"code1": "800", "code2": "8000", "statement_type": "income", "movement_amount": 40},
            {"code1": "100", "code2": "1000", "statement_type": "balance", "movement_amount": 50},
        ]
    )


def test_empty_filter_keeps_every_row(coded_movements):
    assert apply_filter({}, coded_movements) is coded_movements


def test_exact_match(coded_movements):
    out = apply_filter({"code1": "710"}, coded_movements)
    assert out["movement_amount"].tolist() == [20.0]


def test_list_matches_any_value(coded_movements):
    out = apply_filter({"code1": ["700", "800", "999"]}, coded_movements)
    assert out["code1"].tolist() == ["700", "800"]


def test_string_range_is_inclusive(coded_movements):
    out = apply_filter({"code1": {"gte": "700", "lte": "750"}}, coded_movements)
    assert out["code1"].tolist() == ["700", "710", "750"]


def test_numeric_range_compares_as_numbers(coded_movements):
    out = apply_filter({"code2": {"gt": 7000, "lt": 8000}}, coded_movements)
    assert out["code2"].tolist() == ["7100", "7500"]


def test_fields_are_and_combined(coded_movements):
    out = apply_filter(
        {"statement_type": "income", "code1": {"gte": "750"}},
        coded_movements,
    )
    assert out["code1"].tolist() == ["750", "800"]


def test_filter_does_not_mutate_input(coded_movements):
    before = coded_movements.copy()
    apply_filter({"code1": "700"}, coded_movements)
    assert coded_movements.equals(before)


def test_compile_filter_returns_boolean_mask(coded_movements):
    mask = compile_filter({"code1": ["700", "710"]})(coded_movements)
    assert mask.tolist() == [True, True, False, False, False]


def test_validate_filter_collects_every_problem():
    report = validate_filter(
        {
            "bogus": "x",
            "code1": [],
            "code2": None,
            "code3": {"between": 1},
        }
    )

    assert report.is_valid is False
    assert len(report.errors) == 4
    assert any("Invalid filter field: bogus" in e for e in report.errors)
    assert any("Filter array for code1 cannot be empty" in e for e in report.errors)
    assert any("code2 cannot be null" in e for e in report.errors)
    assert any("Invalid range operators for code3: between" in e for e in report.errors)


@pytest.mark.parametrize(
    "spec, fragment",
    [
        ({"code1": {}}, "Range filter for code1 cannot be empty"),
        ({"code1": ["700", None]}, "contains null"),
        ({"code1": [["700"]]}, "only strings or numbers"),
        ({"code1": {"gte": None}}, "code1.gte cannot be null"),
        ({"code1": {"gte": "700", "lte": 799}}, "all be strings or all be numbers"),
        ({"code1": True}, "must be a string, a number"),
    ],
)
def test_validate_filter_value_shapes(spec, fragment):
    report = validate_filter(spec)
    assert report.is_valid is False
    assert any(fragment in e for e in report.errors)


def test_validate_filter_rejects_non_mapping():
    assert validate_filter(["code1"]).errors == ["Filter specification must be an object"]


def test_validate_filter_accepts_valid_spec():
    report = validate_filter({"code1": {"gte": "700", "lt": "800"}, "name2": ["Sales"], "code3": 5})
    assert report.is_valid is True
    assert report.errors == []


def test_apply_filter_safe(coded_movements):
    outcome = apply_filter_safe({"code1": "800"}, coded_movements)
    assert outcome.ok is True
    assert len(outcome.value) == 1

    outcome = apply_filter_safe({"nope": "1", "code1": []}, coded_movements)
    assert outcome.ok is False
    assert isinstance(outcome.error, FilterValidationError)
    assert len(outcome.error.errors) == 2
    assert str(outcome.error).startswith("Invalid filter specification: ")

    outcome = apply_filter_safe({"code1": "800"}, None)
    assert outcome.ok is False
    assert isinstance(outcome.error, ReportEngineError)
    assert str(outcome.error) == "Table is required"


def test_filter_by_field_and_combine_filters(coded_movements):
    incomes = filter_by_field("statement_type", "income")(coded_movements)
    assert len(incomes) == 4

    out = combine_filters(
        [{"statement_type": "income"}, {"code1": {"lt": "800"}}, {}],
        coded_movements,
    )
    assert out["code1"].tolist() == ["700", "710", "750"]
