"""Asset query engine.

Values for one asset are spread over the three entry tables, and every asset
may hold any subset of its type's fields. Queries therefore read each table
for the asset type and merge the rows into one attribute map per asset.
"""
import logging
import operator
import re

from sqlmodel import Session, select

from catalog import resolve_asset_type, resolve_field
from dsl import Predicate, parse_query
from errors import AssetTrackerError, CoercionError, NoResults, NotFound, UnsupportedOperator
from models import ENTRY_TABLES, Asset, AssetField, AssetType, BooleanEntry, NumberEntry, TextEntry, ValueType
from schemas import AssetDetail, AssetRead, AssetView, AttributeValue, DSLQueryResult
from store import coerce_number

logger = logging.getLogger(__name__)

NUMBER_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


def text_key(value: str) -> str:
    """Lower-cased text with runs of whitespace and underscores folded to one space.

    Applied to both the stored value and the query literal, so "Little  Gem",
    "little_gem" and "LITTLE GEM" all compare equal.
    """
    return re.sub(r"[\s_]+", " ", value.strip().lower())


TEXT_MATCHERS = {
    "is": lambda stored, target: stored == target,
    "like": lambda stored, target: target in stored,
}


def _collect_attributes(
    session: Session, asset_type_id: int, asset_ids: list[int] | None = None
) -> dict[int, dict[str, AttributeValue]]:
    rows = []
    for tag, table in ENTRY_TABLES.items():
        stmt = (
            select(table, AssetField.name)
            .join(AssetField, AssetField.id == table.field_id)
            .join(Asset, Asset.id == table.asset_id)
            .where(Asset.asset_type_id == asset_type_id)
        )
        if asset_ids is not None:
            stmt = stmt.where(table.asset_id.in_(asset_ids))
        for entry, field_name in session.exec(stmt):
            rows.append((entry.asset_id, entry.field_id, field_name, tag, entry))

    # Field order, not table order
    attributes: dict[int, dict[str, AttributeValue]] = {}
    for asset_id, field_id, field_name, tag, entry in sorted(rows, key=lambda r: (r[0], r[1])):
        attributes.setdefault(asset_id, {})[field_name] = AttributeValue(
            value=entry.value,
            type=tag,
            date=entry.entry_date,
            entry_id=entry.id,
            field_id=field_id,
        )
    return attributes


def merge_assets(session: Session, asset_type_id: int, asset_ids: list[int] | None = None) -> list[AssetView]:
    stmt = select(Asset.id).where(Asset.asset_type_id == asset_type_id)
    if asset_ids is not None:
        stmt = stmt.where(Asset.id.in_(asset_ids))
    ids = session.exec(stmt.order_by(Asset.id)).all()

    attributes = _collect_attributes(session, asset_type_id, asset_ids)
    return [
        AssetView(asset_id=asset_id, asset_type_id=asset_type_id, attributes=attributes.get(asset_id, {}))
        for asset_id in ids
    ]


def _predicate_clause(field: AssetField, op: str, value: str):
    """Return the entry table and SQL condition for a Boolean or Number ``field op value``."""
    value_type = ValueType(field.value_type)

    if value_type is ValueType.BOOLEAN:
        if op != "==":
            raise UnsupportedOperator(f"Boolean field '{field.name}' only supports '=='")
        literal = value.strip().lower()
        if literal not in ("true", "false"):
            raise CoercionError(f"Boolean field '{field.name}' can only be compared with true or false")
        return BooleanEntry, BooleanEntry.value == (literal == "true")

    compare = NUMBER_OPERATORS.get(op)
    if compare is None:
        raise UnsupportedOperator(
            f"Number field '{field.name}' supports " + ", ".join(NUMBER_OPERATORS) + f", not '{op}'"
        )
    return NumberEntry, compare(NumberEntry.value, coerce_number(value))


def _matching_text_ids(session: Session, asset_type_id: int, field: AssetField, op: str, value: str) -> list[int]:
    # Text and Enum values share the text table; folding happens in Python on both sides
    matches = TEXT_MATCHERS.get(op)
    if matches is None:
        raise UnsupportedOperator(f"{field.value_type} field '{field.name}' supports 'is' and 'like', not '{op}'")

    target = text_key(value)
    rows = session.exec(
        select(TextEntry.asset_id, TextEntry.value)
        .join(Asset, Asset.id == TextEntry.asset_id)
        .where(Asset.asset_type_id == asset_type_id, TextEntry.field_id == field.id)
        .order_by(TextEntry.asset_id)
    ).all()
    return [asset_id for asset_id, stored in rows if matches(text_key(stored), target)]


def matching_asset_ids(session: Session, asset_type_id: int, field: AssetField, op: str, value: str) -> list[int]:
    if ValueType(field.value_type) in (ValueType.TEXT, ValueType.ENUM):
        return _matching_text_ids(session, asset_type_id, field, op, value)

    table, clause = _predicate_clause(field, op, value)
    stmt = (
        select(table.asset_id)
        .join(Asset, Asset.id == table.asset_id)
        .where(Asset.asset_type_id == asset_type_id, table.field_id == field.id, clause)
        .distinct()
    )
    return list(session.exec(stmt).all())


def query_assets(session: Session, asset_type_id: int, predicate: Predicate | None = None) -> list[AssetView]:
    """Merged attribute views for the assets of one type.

    Without a predicate every asset of the type is returned, possibly none.
    With one, an empty match raises NoResults so callers can tell "nothing
    matched" apart from an unknown type or field (NotFound).
    """
    asset_type = session.get(AssetType, asset_type_id)
    if asset_type is None:
        raise NotFound(f"Asset type {asset_type_id} not found")
    if predicate is None:
        return merge_assets(session, asset_type.id)

    field = resolve_field(session, asset_type, predicate.field)
    ids = matching_asset_ids(session, asset_type.id, field, predicate.operator, predicate.value)
    if not ids:
        raise NoResults(
            f"No assets found with field '{field.name}' {predicate.operator} '{predicate.value}'"
        )
    return merge_assets(session, asset_type.id, ids)


def run_dsl_query(session: Session, dsl_query: str) -> DSLQueryResult:
    try:
        parsed = parse_query(dsl_query)
        asset_type = resolve_asset_type(session, parsed.group)
        assets = query_assets(session, asset_type.id, parsed.predicate)
    except AssetTrackerError as e:
        e.dsl_query = dsl_query
        raise

    logger.info(f"DSL query '{dsl_query}' matched {len(assets)} assets")
    return DSLQueryResult(
        dsl_query=dsl_query,
        asset_type_id=asset_type.id,
        asset_type_name=asset_type.name,
        assets=assets,
    )


def list_assets(session: Session) -> list[AssetRead]:
    rows = session.exec(
        select(Asset, AssetType.name).join(AssetType, AssetType.id == Asset.asset_type_id).order_by(Asset.id)
    ).all()
    return [
        AssetRead(id=asset.id, asset_type_id=asset.asset_type_id, asset_type_name=name, created_at=asset.created_at)
        for asset, name in rows
    ]


def get_asset(session: Session, asset_id: int) -> AssetDetail:
    row = session.exec(
        select(Asset, AssetType.name).join(AssetType, AssetType.id == Asset.asset_type_id).where(Asset.id == asset_id)
    ).first()
    if row is None:
        raise NotFound(f"Asset {asset_id} not found")

    asset, name = row
    attributes = _collect_attributes(session, asset.asset_type_id, [asset.id])
    return AssetDetail(
        id=asset.id,
        asset_type_id=asset.asset_type_id,
        asset_type_name=name,
        created_at=asset.created_at,
        attributes=attributes.get(asset.id, {}),
    )
