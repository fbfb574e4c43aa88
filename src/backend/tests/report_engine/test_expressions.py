import pytest

from common.report_engine.errors import (
    DivisionByZeroError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    UndefinedReferenceError,
)
from common.report_engine.expressions import (
    BinaryNode,
    NumberNode,
    UnaryNode,
    VariableNode,
    evaluate_expression,
    evaluate_expression_safe,
    evaluate_expression_with,
    get_dependencies,
    parse,
    parse_expression,
    split_dependencies,
    tokenize,
    validate_expression,
)


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("2 + 3 * 4", 14),
        ("(2 + 3) * 4", 20),
        ("-(1 + 2)", -3),
        ("10 - 4 - 3", 3),
        ("100 / 10 / 5", 2),
        ("2 * -3", -6),
        ("+5 - -5", 10),
        ("1.5 * 2", 3),
    ],
)
def test_precedence_and_associativity(expression, expected):
    assert evaluate_expression(expression, {}) == pytest.approx(expected)


def test_variables_and_order_references():
    context = {"revenue": 1000.0, "cogs": -400.0, "@10": 5.0, "@20": 2.0}

    assert evaluate_expression("revenue + cogs", context) == 600
    assert evaluate_expression("@10 - @20", context) == 3
    assert evaluate_expression("(revenue + cogs) / revenue * 100", context) == pytest.approx(60)


def test_tokenize_positions_and_types():
    tokens = tokenize("rev_1 + 2.5*@30")

    assert [(t.type, t.value, t.position) for t in tokens] == [
        ("variable", "rev_1", 0),
        ("operator", "+", 6),
        ("number", "2.5", 8),
        ("operator", "*", 11),
        ("order", "@30", 12),
    ]


def test_parse_builds_left_associative_tree():
    tree = parse(tokenize("a - b - 1"))

    assert tree == BinaryNode(
        "-",
        BinaryNode("-", VariableNode("a"), VariableNode("b")),
        NumberNode(1.0),
    )
    assert parse(tokenize("-a")) == UnaryNode("-", VariableNode("a"))


def test_parse_expression_reuses_parsed_tree():
    assert parse_expression("a + b") is parse_expression("a + b")


def test_division_by_zero_is_an_evaluation_error():
    with pytest.raises(DivisionByZeroError) as exc:
        evaluate_expression("a / (b - b)", {"a": 1.0, "b": 3.0})
    assert str(exc.value) == "Division by zero"
    assert isinstance(exc.value, ExpressionEvaluationError)


def test_undefined_references_name_the_reference():
    with pytest.raises(UndefinedReferenceError) as exc:
        evaluate_expression("revenue + missing", {"revenue": 1.0})
    assert exc.value.name == "missing"
    assert str(exc.value) == "Undefined variable: missing"

    with pytest.raises(UndefinedReferenceError) as exc:
        evaluate_expression("@99 * 2", {})
    assert str(exc.value) == "Undefined order reference: @99"


def test_none_value_in_context_is_reported():
    with pytest.raises(ExpressionEvaluationError, match="No data for revenue"):
        evaluate_expression("revenue * 2", {"revenue": None})


@pytest.mark.parametrize(
    "expression, message, position",
    [
        ("2 +", "Unexpected end of expression at position 3", 3),
        ("(1 + 2", "Expected ')' at position 6 but reached end of expression", 6),
        ("(1 + 2 3", "Expected ')' but found '3' at position 7", 7),
        ("1 + 2)", "Unexpected token ')' at position 5", 5),
        ("1 $ 2", "Unexpected character '$' at position 2", 2),
        ("a + @x", "Invalid order reference at position 4", 4),
        ("* 2", "Unexpected token '*' at position 0", 0),
    ],
)
def test_syntax_errors_carry_position(expression, message, position):
    with pytest.raises(ExpressionSyntaxError) as exc:
        parse_expression(expression)
    assert str(exc.value) == message
    assert exc.value.position == position


def test_empty_expression_is_rejected():
    with pytest.raises(ExpressionSyntaxError, match="non-empty string"):
        tokenize("")


def test_non_ascii_digits_are_not_numbers():
    with pytest.raises(ExpressionSyntaxError, match="Unexpected character"):
        tokenize("2 + ²")


def test_get_dependencies_is_deduplicated_in_first_seen_order():
    assert get_dependencies("a + b * a - @10 + (b / c)") == ["a", "b", "@10", "c"]
    assert get_dependencies("1 + 2") == []


def test_split_dependencies():
    assert split_dependencies(["a", "@10", "b"]) == (["a", "b"], ["@10"])


def test_validate_expression():
    assert validate_expression("revenue - cogs").is_valid is True

    report = validate_expression("revenue -")
    assert report.is_valid is False
    assert report.errors == ["Unexpected end of expression at position 9"]


def test_evaluate_expression_safe():
    outcome = evaluate_expression_safe("a / 4", {"a": 10.0})
    assert outcome.ok is True
    assert outcome.value == 2.5

    outcome = evaluate_expression_safe("a / 0", {"a": 10.0})
    assert outcome.ok is False
    assert isinstance(outcome.error, DivisionByZeroError)
    with pytest.raises(DivisionByZeroError):
        outcome.unwrap()

    outcome = evaluate_expression_safe("a +", {"a": 10.0})
    assert isinstance(outcome.error, ExpressionSyntaxError)


def test_evaluate_expression_with_binds_context():
    evaluate_in_2024 = evaluate_expression_with({"revenue": 200.0, "cogs": -50.0})

    assert evaluate_in_2024("revenue + cogs") == 150
    assert evaluate_in_2024("cogs / revenue") == -0.25


def test_deep_parentheses_are_a_syntax_error():
    report = validate_expression("(" * 3000 + "1" + ")" * 3000)

    assert report.is_valid is False
    assert report.errors == ["Expression nested too deeply at position 100"]


def test_deep_unary_chain_is_a_syntax_error():
    outcome = evaluate_expression_safe("-" * 3000 + "1", {})

    assert outcome.ok is False
    assert isinstance(outcome.error, ExpressionSyntaxError)
    assert outcome.error.position == 100


def test_nesting_up_to_the_limit_is_accepted():
    assert evaluate_expression("(" * 50 + "1" + ")" * 50, {}) == 1
    assert evaluate_expression("-" * 99 + "2", {}) == -2


def test_long_operator_chain_evaluates():
    expression = " + ".join(["a"] * 5000)

    assert evaluate_expression(expression, {"a": 1.5}) == 7500
    assert get_dependencies(expression) == ["a"]
