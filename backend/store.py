"""Attribute store: recorded values, one entry table per value type.

An entry is keyed by (asset, field) and overwritten in place on every write;
only the current value and its effective date are kept.
"""
import logging
import math
import re
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from catalog import field_options, get_field, resolve_asset_type
from errors import AssetTrackerError, BatchRejected, CoercionError, InvalidEnumValue, NotFound
from models import ENTRY_TABLES, Asset, AssetField, ValueType, store_tag
from schemas import BatchResult, EntryFailure, EntryResult

logger = logging.getLogger(__name__)

TRUE_STRINGS = {"true", "1"}
FALSE_STRINGS = {"false", "0"}

# Plain decimal or exponent notation; no "1_000", "nan" or "inf"
NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def coerce_boolean(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise CoercionError(f"Value {value!r} cannot be read as a boolean (use true/false or 1/0)")


def coerce_number(value) -> float:
    if isinstance(value, bool):
        raise CoercionError(f"Value {value!r} cannot be read as a number")
    if isinstance(value, str) and not NUMBER_PATTERN.match(value.strip()):
        raise CoercionError(f"Value {value!r} cannot be read as a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise CoercionError(f"Value {value!r} cannot be read as a number") from e
    if not math.isfinite(number):
        raise CoercionError(f"Value {value!r} is not a finite number")
    return number


def coerce_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_value(session: Session, field: AssetField, value):
    """Convert a raw value to the Python type stored for the field.

    Enum values must match one of the field's options exactly.
    """
    value_type = ValueType(field.value_type)
    if value_type is ValueType.NUMBER:
        return coerce_number(value)
    if value_type is ValueType.BOOLEAN:
        return coerce_boolean(value)

    text = coerce_text(value)
    if value_type is ValueType.ENUM:
        options = field_options(session, field.id)
        if text not in options:
            raise InvalidEnumValue(
                f"'{text}' is not an option of field '{field.name}'; expected one of: {', '.join(options)}"
            )
    return text


def effective_date(entry_date=None) -> date:
    if entry_date is None or entry_date == "":
        return date.today()
    if isinstance(entry_date, date):
        return entry_date
    try:
        return date.fromisoformat(str(entry_date))
    except ValueError as e:
        raise CoercionError(f"Invalid date {entry_date!r}; expected YYYY-MM-DD") from e


def _entry_result(field: AssetField, entry) -> EntryResult:
    return EntryResult(
        field_id=field.id,
        entry_id=entry.id,
        type=store_tag(field.value_type),
        value_type=field.value_type,
        value=entry.value,
        date=entry.entry_date,
    )


def _field_for_asset(session: Session, asset: Asset, field_id: int) -> AssetField:
    field = get_field(session, field_id)
    if field.asset_type_id != asset.asset_type_id:
        raise NotFound(f"Field {field_id} is not defined on the asset type of asset {asset.id}")
    return field


def _upsert(session: Session, asset_id: int, field: AssetField, value, entry_date: date) -> EntryResult:
    """Insert or overwrite the (asset, field) entry. Flushes, never commits."""
    table = ENTRY_TABLES[store_tag(field.value_type)]
    entry = session.exec(
        select(table).where(table.asset_id == asset_id, table.field_id == field.id)
    ).first()
    if entry is None:
        entry = table(asset_id=asset_id, field_id=field.id, value=value, entry_date=entry_date)
    else:
        entry.value = value
        entry.entry_date = entry_date
    session.add(entry)
    session.flush()
    return _entry_result(field, entry)


def write_entry(session: Session, asset_id: int, field_id: int, value, entry_date=None) -> EntryResult:
    asset = session.get(Asset, asset_id)
    if asset is None:
        raise NotFound(f"Asset {asset_id} not found")
    field = _field_for_asset(session, asset, field_id)
    coerced = coerce_value(session, field, value)
    when = effective_date(entry_date)

    try:
        result = _upsert(session, asset_id, field, coerced, when)
        session.commit()
    except IntegrityError:
        # Lost a race with a concurrent first write; last write wins
        session.rollback()
        logger.warning(f"Concurrent write to asset {asset_id} field {field_id}, retrying as update")
        result = _upsert(session, asset_id, field, coerced, when)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Wrote {result.type} entry {result.entry_id} (asset {asset_id}, field {field_id})")
    return result


def update_entry(session: Session, kind: str, entry_id: int, value, entry_date=None) -> EntryResult:
    """Overwrite an entry addressed by its store tag and id."""
    table = ENTRY_TABLES.get(kind)
    if table is None:
        raise NotFound(f"Unknown entry kind '{kind}'; expected one of: {', '.join(ENTRY_TABLES)}")
    entry = session.get(table, entry_id)
    if entry is None:
        raise NotFound(f"{kind.capitalize()} entry {entry_id} not found")

    field = get_field(session, entry.field_id)
    coerced = coerce_value(session, field, value)
    when = effective_date(entry_date)
    try:
        entry.value = coerced
        entry.entry_date = when
        session.add(entry)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(entry)
    return _entry_result(field, entry)


def _entry_parts(item):
    if isinstance(item, dict):
        return item.get("field_id"), item.get("value"), item.get("date")
    return item.field_id, item.value, item.date


def create_asset_with_entries(
    session: Session,
    asset_type_name: str,
    entries: list,
    category_name: str | None = None,
) -> BatchResult:
    """Create an asset and record a batch of entries against it.

    Entries that fail are reported and skipped rather than aborting the batch.
    The asset is kept if at least one entry was written; otherwise nothing is
    persisted and BatchRejected lists every failure.
    """
    asset_type = resolve_asset_type(session, asset_type_name, category_name)
    if not entries:
        raise BatchRejected("No entries supplied", failures=[])

    today = date.today()
    successful: list[EntryResult] = []
    failed: list[EntryFailure] = []
    try:
        asset = Asset(asset_type_id=asset_type.id)
        session.add(asset)
        session.flush()
        asset_id = asset.id

        for item in entries:
            field_id, value, entry_date = _entry_parts(item)
            try:
                if field_id is None or value is None:
                    raise CoercionError("Missing field_id or value")
                field = _field_for_asset(session, asset, field_id)
                coerced = coerce_value(session, field, value)
                when = effective_date(entry_date) if entry_date else today
                successful.append(_upsert(session, asset_id, field, coerced, when))
            except AssetTrackerError as e:
                failed.append(EntryFailure(field_id=field_id, error=e.kind, message=e.message))
    except Exception:
        session.rollback()
        raise

    if not successful:
        session.rollback()
        logger.warning(f"No entries written for new {asset_type.name} asset; rolled back")
        raise BatchRejected(
            "Failed to add any entries, asset creation rolled back",
            failures=[f.model_dump() for f in failed],
        )

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        f"Created asset {asset_id} ({asset_type.name}): {len(successful)} entries written, {len(failed)} failed"
    )
    return BatchResult(
        asset_id=asset_id,
        asset_type_id=asset_type.id,
        asset_type_name=asset_type.name,
        date=today,
        successful_entries=successful,
        failed_entries=failed,
    )
