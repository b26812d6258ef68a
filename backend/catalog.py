"""Schema catalog: categories, asset types, fields and enum options.

Names are compared through ``normalize_name`` so that "Roma Tomatoes",
"roma  tomatoes" and "roma_tomatoes" are the same name. The normalized key is
also the identifier the query language uses.
"""
import logging
import re
from collections import defaultdict
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, delete, select

from errors import AmbiguousName, Duplicate, InvalidEnum, InvalidName, InvalidType, NotFound
from models import (
    ENTRY_TABLES,
    Asset,
    AssetField,
    AssetType,
    Category,
    EnumOption,
    ValueType,
)
from schemas import FieldRead

logger = logging.getLogger(__name__)

# Type names used by earlier versions of the service
VALUE_TYPE_ALIASES = {
    "double": ValueType.NUMBER,
    "string": ValueType.TEXT,
}


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"


def normalize_name(name: str) -> str:
    """Lower-case, trim and fold runs of whitespace/underscores into one "_"."""
    return re.sub(r"[\s_]+", "_", (name or "").strip()).lower()


def _display_name(name: str) -> str:
    return " ".join(name.split())


def _name_key(name: str, what: str) -> str:
    key = normalize_name(name)
    if not key.strip("_"):
        raise InvalidName(f"{what} name must not be blank")
    return key


def _commit(session: Session, duplicate_message: str):
    """Commit, turning a unique-constraint race into Duplicate."""
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise Duplicate(duplicate_message) from e
    except Exception:
        session.rollback()
        raise


def parse_value_type(value_type) -> ValueType:
    if isinstance(value_type, ValueType):
        return value_type
    key = str(value_type or "").strip().lower()
    if key in VALUE_TYPE_ALIASES:
        return VALUE_TYPE_ALIASES[key]
    for candidate in ValueType:
        if candidate.value.lower() == key:
            return candidate
    raise InvalidType(
        f"Invalid value type {value_type!r}; must be one of: "
        + ", ".join(t.value for t in ValueType)
    )


def _clean_enum_options(value_type: ValueType, options) -> list[str]:
    if value_type is not ValueType.ENUM:
        if options:
            raise InvalidEnum(f"Only Enum fields take options, not {value_type.value} fields")
        return []

    cleaned = []
    for option in options or []:
        option = str(option).strip()
        if not option:
            raise InvalidEnum("Enum options must not be blank")
        if option not in cleaned:
            cleaned.append(option)
    if not cleaned:
        raise InvalidEnum("Enum fields must have at least one option")
    return cleaned


def _enum_option_rows(field_id: int, options: list[str]) -> list[EnumOption]:
    return [EnumOption(field_id=field_id, option_value=option) for option in options]


# Categories


def list_categories(session: Session) -> list[Category]:
    return list(session.exec(select(Category).order_by(Category.id)).all())


def resolve_category(session: Session, name: str) -> Category:
    category = session.exec(select(Category).where(Category.name_key == normalize_name(name))).first()
    if category is None:
        raise NotFound(f"Category '{name}' not found")
    return category


def create_category(session: Session, name: str) -> Category:
    key = _name_key(name, "Category")
    if session.exec(select(Category).where(Category.name_key == key)).first():
        raise Duplicate(f"Category '{_display_name(name)}' already exists")

    category = Category(name=_display_name(name), name_key=key)
    session.add(category)
    _commit(session, f"Category '{_display_name(name)}' already exists")
    session.refresh(category)
    logger.info(f"Created category {category.id} ({category.name})")
    return category


def rename_category(session: Session, category_id: int, name: str) -> Category:
    category = session.get(Category, category_id)
    if category is None:
        raise NotFound(f"Category {category_id} not found")

    key = _name_key(name, "Category")
    clash = session.exec(
        select(Category).where(Category.name_key == key, Category.id != category_id)
    ).first()
    if clash:
        raise Duplicate(f"Category '{_display_name(name)}' already exists")

    category.name = _display_name(name)
    category.name_key = key
    session.add(category)
    _commit(session, f"Category '{_display_name(name)}' already exists")
    session.refresh(category)
    return category


# Asset types (groups)


def list_asset_types(session: Session, category_id: int | None = None) -> list[AssetType]:
    stmt = select(AssetType)
    if category_id is not None:
        stmt = stmt.where(AssetType.category_id == category_id)
    return list(session.exec(stmt.order_by(AssetType.id)).all())


def resolve_asset_type(session: Session, name: str, category_name: str | None = None) -> AssetType:
    """Find an asset type by name, optionally within one category.

    Names are only unique inside a category, so a name that exists under
    several categories needs the category to disambiguate.
    """
    stmt = select(AssetType).where(AssetType.name_key == normalize_name(name))
    if category_name is not None:
        category = resolve_category(session, category_name)
        stmt = stmt.where(AssetType.category_id == category.id)

    matches = session.exec(stmt.order_by(AssetType.id)).all()
    if not matches:
        raise NotFound(f"Asset type '{name}' not found")
    if len(matches) > 1:
        raise AmbiguousName(
            f"Asset type '{name}' exists in {len(matches)} categories; specify the category"
        )
    return matches[0]


def create_asset_type(session: Session, category_name: str, name: str) -> AssetType:
    category = resolve_category(session, category_name)
    key = _name_key(name, "Asset type")
    clash = session.exec(
        select(AssetType).where(AssetType.category_id == category.id, AssetType.name_key == key)
    ).first()
    if clash:
        raise Duplicate(f"Asset type '{_display_name(name)}' already exists in category '{category.name}'")

    asset_type = AssetType(category_id=category.id, name=_display_name(name), name_key=key)
    session.add(asset_type)
    _commit(session, f"Asset type '{_display_name(name)}' already exists in category '{category.name}'")
    session.refresh(asset_type)
    logger.info(f"Created asset type {asset_type.id} ({asset_type.name}) in category {category.id}")
    return asset_type


def rename_asset_type(session: Session, asset_type_id: int, name: str) -> AssetType:
    asset_type = session.get(AssetType, asset_type_id)
    if asset_type is None:
        raise NotFound(f"Asset type {asset_type_id} not found")

    key = _name_key(name, "Asset type")
    clash = session.exec(
        select(AssetType).where(
            AssetType.category_id == asset_type.category_id,
            AssetType.name_key == key,
            AssetType.id != asset_type_id,
        )
    ).first()
    if clash:
        raise Duplicate(f"Asset type '{_display_name(name)}' already exists in this category")

    asset_type.name = _display_name(name)
    asset_type.name_key = key
    session.add(asset_type)
    _commit(session, f"Asset type '{_display_name(name)}' already exists in this category")
    session.refresh(asset_type)
    return asset_type


# Fields


def get_field(session: Session, field_id: int) -> AssetField:
    field = session.get(AssetField, field_id)
    if field is None:
        raise NotFound(f"Field {field_id} not found")
    return field


def resolve_field(session: Session, asset_type: AssetType, name: str) -> AssetField:
    field = session.exec(
        select(AssetField).where(
            AssetField.asset_type_id == asset_type.id,
            AssetField.name_key == normalize_name(name),
        )
    ).first()
    if field is None:
        raise NotFound(f"Field '{name}' not found on asset type '{asset_type.name}'")
    return field


def field_options(session: Session, field_id: int) -> list[str]:
    return list(
        session.exec(
            select(EnumOption.option_value).where(EnumOption.field_id == field_id).order_by(EnumOption.id)
        ).all()
    )


def _field_read(field: AssetField, options: list[str]) -> FieldRead:
    return FieldRead(
        id=field.id,
        asset_type_id=field.asset_type_id,
        name=field.name,
        value_type=field.value_type,
        units=field.units,
        enum_options=options,
    )


def list_fields(session: Session, asset_type_id: int | None = None) -> list[FieldRead]:
    stmt = select(AssetField)
    if asset_type_id is not None:
        stmt = stmt.where(AssetField.asset_type_id == asset_type_id)
    fields = session.exec(stmt.order_by(AssetField.id)).all()

    options = defaultdict(list)
    enum_ids = [f.id for f in fields if f.value_type == ValueType.ENUM.value]
    if enum_ids:
        rows = session.exec(
            select(EnumOption).where(EnumOption.field_id.in_(enum_ids)).order_by(EnumOption.id)
        ).all()
        for row in rows:
            options[row.field_id].append(row.option_value)

    return [_field_read(f, options[f.id]) for f in fields]


def list_enum_options(session: Session) -> list[EnumOption]:
    return list(session.exec(select(EnumOption).order_by(EnumOption.id)).all())


def create_field(
    session: Session,
    asset_type_name: str,
    name: str,
    value_type: str,
    units: str | None = None,
    enum_options: list[str] | None = None,
    category_name: str | None = None,
) -> FieldRead:
    """Create a field, and its enum options, in one transaction."""
    asset_type = resolve_asset_type(session, asset_type_name, category_name)
    vtype = parse_value_type(value_type)
    options = _clean_enum_options(vtype, enum_options)
    key = _name_key(name, "Field")

    clash = session.exec(
        select(AssetField).where(AssetField.asset_type_id == asset_type.id, AssetField.name_key == key)
    ).first()
    if clash:
        raise Duplicate(f"Field '{_display_name(name)}' already exists on asset type '{asset_type.name}'")

    field = AssetField(
        asset_type_id=asset_type.id,
        name=_display_name(name),
        name_key=key,
        value_type=vtype.value,
        units=(units.strip() or None) if units else None,
    )
    try:
        session.add(field)
        session.flush()  # Assigns field.id for the option rows
        session.add_all(_enum_option_rows(field.id, options))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise Duplicate(f"Field '{_display_name(name)}' already exists on asset type '{asset_type.name}'") from e
    except Exception:
        session.rollback()
        raise

    session.refresh(field)
    logger.info(f"Created {field.value_type} field {field.id} ({field.name}) on asset type {asset_type.id}")
    return _field_read(field, options)


def update_field(
    session: Session,
    field_id: int,
    name: str,
    value_type: str,
    units: str | None = None,
    enum_options: list[str] | None = None,
) -> FieldRead:
    """Rename a field and update its units or enum options in place.

    The value type is fixed at creation; ``value_type`` must repeat it. For an
    Enum field a non-None ``enum_options`` replaces the whole option set.
    """
    field = get_field(session, field_id)
    vtype = parse_value_type(value_type)
    if vtype.value != field.value_type:
        raise InvalidType(
            f"Field '{field.name}' is a {field.value_type} field; its type cannot change to {vtype.value}"
        )

    options = None
    if enum_options is not None:
        options = _clean_enum_options(vtype, enum_options)
        if vtype is not ValueType.ENUM:
            options = None

    key = _name_key(name, "Field")
    clash = session.exec(
        select(AssetField).where(
            AssetField.asset_type_id == field.asset_type_id,
            AssetField.name_key == key,
            AssetField.id != field_id,
        )
    ).first()
    if clash:
        raise Duplicate(f"Field '{_display_name(name)}' already exists on this asset type")

    try:
        field.name = _display_name(name)
        field.name_key = key
        if units is not None:
            field.units = units.strip() or None
        session.add(field)
        if options is not None:
            session.exec(delete(EnumOption).where(EnumOption.field_id == field_id))
            session.add_all(_enum_option_rows(field_id, options))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise Duplicate(f"Field '{_display_name(name)}' already exists on this asset type") from e
    except Exception:
        session.rollback()
        raise

    session.refresh(field)
    logger.info(f"Updated field {field.id} ({field.name})")
    return _field_read(field, field_options(session, field.id))


# Cascading deletes. Dependents are removed explicitly so SQLite without
# foreign key enforcement behaves like PostgreSQL.


def _purge_fields(session: Session, field_ids):
    for table in ENTRY_TABLES.values():
        session.exec(delete(table).where(table.field_id.in_(field_ids)))
    session.exec(delete(EnumOption).where(EnumOption.field_id.in_(field_ids)))
    session.exec(delete(AssetField).where(AssetField.id.in_(field_ids)))


def _purge_assets(session: Session, asset_ids):
    for table in ENTRY_TABLES.values():
        session.exec(delete(table).where(table.asset_id.in_(asset_ids)))
    session.exec(delete(Asset).where(Asset.id.in_(asset_ids)))


def _purge_asset_types(session: Session, asset_type_ids):
    field_ids = list(session.exec(select(AssetField.id).where(AssetField.asset_type_id.in_(asset_type_ids))).all())
    asset_ids = list(session.exec(select(Asset.id).where(Asset.asset_type_id.in_(asset_type_ids))).all())
    _purge_assets(session, asset_ids)
    _purge_fields(session, field_ids)
    session.exec(delete(AssetType).where(AssetType.id.in_(asset_type_ids)))


def _delete(session: Session, model, row_id: int, purge) -> DeleteOutcome:
    if session.get(model, row_id) is None:
        return DeleteOutcome.ALREADY_ABSENT
    try:
        purge()
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"Deleted {model.__tablename__} {row_id} and its dependents")
    return DeleteOutcome.DELETED


def delete_category(session: Session, category_id: int) -> DeleteOutcome:
    def purge():
        asset_type_ids = list(
            session.exec(select(AssetType.id).where(AssetType.category_id == category_id)).all()
        )
        _purge_asset_types(session, asset_type_ids)
        session.exec(delete(Category).where(Category.id == category_id))

    return _delete(session, Category, category_id, purge)


def delete_asset_type(session: Session, asset_type_id: int) -> DeleteOutcome:
    return _delete(session, AssetType, asset_type_id, lambda: _purge_asset_types(session, [asset_type_id]))


def delete_field(session: Session, field_id: int) -> DeleteOutcome:
    return _delete(session, AssetField, field_id, lambda: _purge_fields(session, [field_id]))


def delete_asset(session: Session, asset_id: int) -> DeleteOutcome:
    return _delete(session, Asset, asset_id, lambda: _purge_assets(session, [asset_id]))
