from datetime import UTC, date, datetime
from enum import Enum

from sqlmodel import Field, SQLModel, UniqueConstraint


class ValueType(str, Enum):
    NUMBER = "Number"
    TEXT = "Text"
    BOOLEAN = "Boolean"
    ENUM = "Enum"


class Category(SQLModel, table=True):
    __tablename__ = "category"

    id: int | None = Field(default=None, primary_key=True)
    name: str  # Display name (trimmed, casing preserved)
    name_key: str = Field(unique=True, index=True)  # Normalized: see catalog.normalize_name


class AssetType(SQLModel, table=True):
    __tablename__ = "asset_type"
    __table_args__ = (UniqueConstraint("category_id", "name_key", name="uniq_asset_type_category_name"),)

    id: int | None = Field(default=None, primary_key=True)
    category_id: int = Field(foreign_key="category.id", ondelete="CASCADE", index=True)
    name: str
    name_key: str = Field(index=True)


class AssetField(SQLModel, table=True):
    __tablename__ = "field"
    __table_args__ = (UniqueConstraint("asset_type_id", "name_key", name="uniq_field_asset_type_name"),)

    id: int | None = Field(default=None, primary_key=True)
    asset_type_id: int = Field(foreign_key="asset_type.id", ondelete="CASCADE", index=True)
    name: str
    name_key: str = Field(index=True)
    value_type: str  # One of ValueType; never changes after creation
    units: str | None = Field(default=None)


class EnumOption(SQLModel, table=True):
    __tablename__ = "field_enum_option"
    __table_args__ = (UniqueConstraint("field_id", "option_value", name="uniq_enum_option_field_value"),)

    id: int | None = Field(default=None, primary_key=True)
    field_id: int = Field(foreign_key="field.id", ondelete="CASCADE", index=True)
    option_value: str


class Asset(SQLModel, table=True):
    __tablename__ = "asset"

    id: int | None = Field(default=None, primary_key=True)
    asset_type_id: int = Field(foreign_key="asset_type.id", ondelete="CASCADE", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# One table per value type. Every table holds at most one row per (asset, field).


class NumberEntry(SQLModel, table=True):
    __tablename__ = "entry_number"
    __table_args__ = (UniqueConstraint("asset_id", "field_id", name="uniq_entry_number_asset_field"),)

    id: int | None = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="asset.id", ondelete="CASCADE", index=True)
    field_id: int = Field(foreign_key="field.id", ondelete="CASCADE", index=True)
    value: float
    entry_date: date


class BooleanEntry(SQLModel, table=True):
    __tablename__ = "entry_bool"
    __table_args__ = (UniqueConstraint("asset_id", "field_id", name="uniq_entry_bool_asset_field"),)

    id: int | None = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="asset.id", ondelete="CASCADE", index=True)
    field_id: int = Field(foreign_key="field.id", ondelete="CASCADE", index=True)
    value: bool
    entry_date: date


class TextEntry(SQLModel, table=True):
    __tablename__ = "entry_text"
    __table_args__ = (UniqueConstraint("asset_id", "field_id", name="uniq_entry_text_asset_field"),)

    id: int | None = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="asset.id", ondelete="CASCADE", index=True)
    field_id: int = Field(foreign_key="field.id", ondelete="CASCADE", index=True)
    value: str  # Text and Enum fields
    entry_date: date


# Store tag -> table. The tag is what query results report as an attribute's type.
ENTRY_TABLES = {
    "number": NumberEntry,
    "boolean": BooleanEntry,
    "text": TextEntry,
}

STORE_FOR_TYPE = {
    ValueType.NUMBER: "number",
    ValueType.BOOLEAN: "boolean",
    ValueType.TEXT: "text",
    ValueType.ENUM: "text",
}


def store_tag(value_type: str) -> str:
    """Store tag for a field's value type (Enum values live with Text)."""
    return STORE_FOR_TYPE[ValueType(value_type)]
