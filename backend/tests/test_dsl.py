"""Tests for the DSL parser."""
import pytest

from dsl import ParsedQuery, Predicate, find_operator, parse_query
from errors import ParseError


def test_parse_predicate():
    parsed = parse_query("lettuce.weight >= 100")
    assert parsed == ParsedQuery(group="lettuce", field="weight", operator=">=", value="100")
    assert parsed.predicate == Predicate("weight", ">=", "100")


def test_parse_bare_group():
    parsed = parse_query("cows")
    assert parsed == ParsedQuery(group="cows")
    assert parsed.predicate is None


def test_parse_bare_group_with_underscores_and_padding():
    assert parse_query("  roma_tomatoes \n") == ParsedQuery(group="roma_tomatoes")


def test_bare_query_with_invalid_characters():
    with pytest.raises(ParseError) as exc:
        parse_query("cows weight 200")
    assert exc.value.reason == "invalid characters"


@pytest.mark.parametrize("text", ["", "   ", "Cows", "cows2", "cows > 5"])
def test_other_invalid_bare_queries(text):
    with pytest.raises(ParseError) as exc:
        parse_query(text)
    assert exc.value.reason == "invalid characters"


def test_missing_right_operand():
    with pytest.raises(ParseError) as exc:
        parse_query("lettuce.weight >=")
    assert exc.value.reason == "missing operand"


def test_missing_left_operand():
    with pytest.raises(ParseError) as exc:
        parse_query("== 5.5")
    assert exc.value.reason == "missing operand"


def test_invalid_operator():
    with pytest.raises(ParseError) as exc:
        parse_query("lettuce.weight ~ 100")
    assert exc.value.reason == "invalid operator"


@pytest.mark.parametrize("text", ["lettuce >= 1.5", "farm.lettuce.weight >= 100", "lettuce. >= 100"])
def test_invalid_field_reference(text):
    with pytest.raises(ParseError) as exc:
        parse_query(text)
    assert exc.value.reason == "invalid field reference"


@pytest.mark.parametrize(
    "text,operator",
    [
        ("cows.age <= 5", "<="),
        ("cows.age < 5", "<"),
        ("cows.age >= 5", ">="),
        ("cows.age > 5", ">"),
        ("cows.age == 5", "=="),
        ("cows.age != 5", "!="),
        ("cows.name is 'Bess'", "is"),
        ("cows.name like 'Bess'", "like"),
    ],
)
def test_operator_priority(text, operator):
    parsed = parse_query(text)
    assert parsed.operator == operator
    assert parsed.field in ("age", "name")


def test_quotes_are_stripped_once():
    assert parse_query("tomatoes.destination is 'Internal'").value == "Internal"
    assert parse_query("cows.name is ''Bess''").value == "'Bess'"


def test_word_operators_need_word_boundaries():
    # "is" inside a field name is not an operator
    parsed = parse_query("lettuce.distance > 3")
    assert parsed.field == "distance"
    assert parsed.operator == ">"
    assert parse_query("this") == ParsedQuery(group="this")


def test_operators_inside_quoted_value_are_ignored():
    parsed = parse_query("cows.name == 'this is it'")
    assert parsed.operator == "=="
    assert parsed.value == "this is it"


def test_find_operator_returns_position():
    assert find_operator("cows.age >= 3") == (">=", 9)
    assert find_operator("cows") is None


def test_parser_does_not_check_types():
    # Boolean fields only take ==, but that is checked when the query runs
    parsed = parse_query("cows.covid_vax like 'yes'")
    assert parsed.operator == "like"
