import pytest

import catalog
import store
from dsl import Predicate
from errors import CoercionError, NoResults, NotFound, ParseError, UnsupportedOperator
from query import get_asset, list_assets, query_assets, run_dsl_query, text_key
from seed import SAMPLE_ASSETS, seed_database


@pytest.fixture
def lettuces(session, farm):
    """Three lettuce assets; the last one only has a weight."""
    rows = [
        [(farm.weight_id, 120), (farm.organic_id, True), (farm.variety_id, "Red Leaf"), (farm.destination_id, "Market")],
        [(farm.weight_id, 80), (farm.organic_id, False), (farm.variety_id, "iceberg_crisp"), (farm.destination_id, "Internal")],
        [(farm.weight_id, 100)],
    ]
    ids = []
    for row in rows:
        entries = [{"field_id": field_id, "value": value, "date": "2024-01-15"} for field_id, value in row]
        ids.append(store.create_asset_with_entries(session, "lettuce", entries).asset_id)
    return ids


def asset_ids(views):
    return [view.asset_id for view in views]


def test_text_key():
    assert text_key("Red Leaf") == "red leaf"
    assert text_key(" red__leaf ") == "red leaf"
    assert text_key("Little \t Gem") == "little gem"


def test_query_without_predicate_merges_all_tables(session, farm, lettuces):
    views = query_assets(session, farm.lettuce_id)

    assert asset_ids(views) == lettuces
    first = views[0].attributes
    assert list(first) == ["weight", "organic", "variety", "destination"]
    assert first["weight"].value == 120
    assert first["weight"].type == "number"
    assert first["organic"].value is True
    assert first["organic"].type == "boolean"
    assert first["destination"].type == "text"
    assert str(first["variety"].date) == "2024-01-15"

    assert list(views[2].attributes) == ["weight"]


def test_query_includes_assets_without_entries(session, farm, lettuces):
    catalog.delete_field(session, farm.weight_id)

    views = query_assets(session, farm.lettuce_id)
    assert asset_ids(views) == lettuces
    assert views[2].attributes == {}


def test_query_empty_type_is_empty_list(session, farm):
    assert query_assets(session, farm.cows_id) == []


def test_query_unknown_type(session, farm):
    with pytest.raises(NotFound):
        query_assets(session, 9999)


@pytest.mark.parametrize(
    "op,value,expected",
    [
        (">", "100", [0]),
        (">=", "100", [0, 2]),
        ("<", "100", [1]),
        ("<=", "100", [1, 2]),
        ("==", "80", [1]),
        ("!=", "80", [0, 2]),
        ("==", "80.0", [1]),
    ],
)
def test_number_predicates(session, farm, lettuces, op, value, expected):
    views = query_assets(session, farm.lettuce_id, Predicate("weight", op, value))
    assert asset_ids(views) == [lettuces[i] for i in expected]
    # Matching assets come back with every attribute, not just the filtered one
    assert all("weight" in view.attributes for view in views)


def test_boolean_predicate(session, farm, lettuces):
    views = query_assets(session, farm.lettuce_id, Predicate("organic", "==", "true"))
    assert asset_ids(views) == [lettuces[0]]
    assert list(views[0].attributes) == ["weight", "organic", "variety", "destination"]

    views = query_assets(session, farm.lettuce_id, Predicate("organic", "==", "FALSE"))
    assert asset_ids(views) == [lettuces[1]]


@pytest.mark.parametrize("op", ["!=", ">", "is", "like"])
def test_boolean_only_supports_equality(session, farm, lettuces, op):
    with pytest.raises(UnsupportedOperator):
        query_assets(session, farm.lettuce_id, Predicate("organic", op, "true"))


def test_boolean_literal_must_be_true_or_false(session, farm, lettuces):
    with pytest.raises(CoercionError):
        query_assets(session, farm.lettuce_id, Predicate("organic", "==", "yes"))


@pytest.mark.parametrize("op", ["is", "like"])
def test_number_rejects_text_operators(session, farm, lettuces, op):
    with pytest.raises(UnsupportedOperator):
        query_assets(session, farm.lettuce_id, Predicate("weight", op, "100"))


def test_number_literal_must_parse(session, farm, lettuces):
    with pytest.raises(CoercionError):
        query_assets(session, farm.lettuce_id, Predicate("weight", ">", "heavy"))


@pytest.mark.parametrize(
    "op,value,expected",
    [
        ("is", "Red Leaf", [0]),
        ("is", "red_leaf", [0]),
        ("is", "RED LEAF", [0]),
        ("is", "iceberg crisp", [1]),
        ("is", "red", []),
        ("like", "leaf", [0]),
        ("like", "berg", [1]),
        ("like", "berg crisp", [1]),
        ("like", "e", [0, 1]),
    ],
)
def test_text_predicates(session, farm, lettuces, op, value, expected):
    predicate = Predicate("variety", op, value)
    if not expected:
        with pytest.raises(NoResults):
            query_assets(session, farm.lettuce_id, predicate)
        return
    assert asset_ids(query_assets(session, farm.lettuce_id, predicate)) == [lettuces[i] for i in expected]


def test_like_escapes_wildcards(session, farm, lettuces):
    with pytest.raises(NoResults):
        query_assets(session, farm.lettuce_id, Predicate("variety", "like", "%"))


@pytest.mark.parametrize("op", ["==", "!=", ">"])
def test_text_rejects_comparison_operators(session, farm, lettuces, op):
    with pytest.raises(UnsupportedOperator):
        query_assets(session, farm.lettuce_id, Predicate("variety", op, "Red Leaf"))


def test_enum_predicate(session, farm, lettuces):
    views = query_assets(session, farm.lettuce_id, Predicate("destination", "is", "internal"))
    assert asset_ids(views) == [lettuces[1]]


def test_unknown_field_is_not_found(session, farm, lettuces):
    with pytest.raises(NotFound):
        query_assets(session, farm.lettuce_id, Predicate("height", ">", "1"))
    # Field of another asset type
    with pytest.raises(NotFound):
        query_assets(session, farm.lettuce_id, Predicate("name", "is", "Bess"))


def test_no_match_is_no_results(session, farm, lettuces):
    with pytest.raises(NoResults):
        query_assets(session, farm.lettuce_id, Predicate("weight", ">", "1000"))


def test_run_dsl_query(session, farm, lettuces):
    result = run_dsl_query(session, "lettuce.weight >= 100")
    assert result.dsl_query == "lettuce.weight >= 100"
    assert result.asset_type_id == farm.lettuce_id
    assert result.asset_type_name == "lettuce"
    assert asset_ids(result.assets) == [lettuces[0], lettuces[2]]


def test_run_dsl_bare_group(session, farm, lettuces):
    assert asset_ids(run_dsl_query(session, "lettuce").assets) == lettuces
    assert run_dsl_query(session, "cows").assets == []


def test_run_dsl_normalizes_names(session, farm):
    store.create_asset_with_entries(session, "cows", [{"field_id": farm.born_weight_id, "value": 210}])
    result = run_dsl_query(session, "cows.born_weight > 200")
    assert list(result.assets[0].attributes) == ["born weight"]


@pytest.mark.parametrize(
    "text,error",
    [
        ("goats", NotFound),
        ("lettuce.height > 1", NotFound),
        ("lettuce.weight > 1000", NoResults),
        ("lettuce.organic like 'yes'", UnsupportedOperator),
        ("lettuce weight", ParseError),
    ],
)
def test_run_dsl_errors_carry_query(session, farm, lettuces, text, error):
    with pytest.raises(error) as exc:
        run_dsl_query(session, text)
    assert exc.value.dsl_query == text
    assert exc.value.to_dict()["dsl_query"] == text


def test_list_and_get_assets(session, farm, lettuces):
    assets = list_assets(session)
    assert [a.id for a in assets] == lettuces
    assert all(a.asset_type_name == "lettuce" for a in assets)

    detail = get_asset(session, lettuces[1])
    assert detail.attributes["variety"].value == "iceberg_crisp"
    with pytest.raises(NotFound):
        get_asset(session, 9999)


def test_seeded_database_is_queryable(session):
    seed_database()
    seed_database()  # Second run is a no-op

    cows = run_dsl_query(session, "cows.covid_vax == true")
    assert [view.attributes["name"].value for view in cows.assets] == ["Bess"]

    tomatoes = run_dsl_query(session, "roma_tomatoes.destination is 'internal'")
    assert len(tomatoes.assets) == 1
    assert len(list_assets(session)) == len(SAMPLE_ASSETS)


@pytest.mark.parametrize("op,value", [("is", "little gem"), ("is", "Little_Gem"), ("like", "tle g")])
def test_text_match_folds_stored_whitespace(session, farm, op, value):
    asset_id = store.create_asset_with_entries(
        session, "lettuce", [{"field_id": farm.variety_id, "value": "Little  Gem"}]
    ).asset_id

    views = query_assets(session, farm.lettuce_id, Predicate("variety", op, value))
    assert asset_ids(views) == [asset_id]
