import datetime as dt

from pydantic import BaseModel, Field, field_validator

# Raw values as they arrive from clients; the store coerces them per field type
EntryValue = bool | int | float | str


class CategoryCreate(BaseModel):
    name: str


class CategoryRename(BaseModel):
    name: str


class CategoryRead(BaseModel):
    id: int
    name: str


class AssetTypeCreate(BaseModel):
    category_name: str
    name: str


class AssetTypeRename(BaseModel):
    name: str


class AssetTypeRead(BaseModel):
    id: int
    category_id: int
    name: str


class FieldCreate(BaseModel):
    asset_type_name: str
    category_name: str | None = None  # Only needed when the asset type name is ambiguous
    name: str
    value_type: str
    units: str | None = None
    enum_options: list[str] | None = None


class FieldUpdate(BaseModel):
    name: str
    value_type: str  # Must match the existing type
    units: str | None = None
    enum_options: list[str] | None = None


class FieldRead(BaseModel):
    id: int
    asset_type_id: int
    name: str
    value_type: str
    units: str | None = None
    enum_options: list[str] = []


class EnumOptionRead(BaseModel):
    id: int
    field_id: int
    option_value: str


class EntryIn(BaseModel):
    field_id: int
    value: EntryValue
    date: dt.date | None = None


class EntryWrite(EntryIn):
    asset_id: int


class EntryUpdate(BaseModel):
    value: EntryValue
    date: dt.date | None = None


class AssetCreate(BaseModel):
    asset_type_name: str
    category_name: str | None = None
    entries: list[EntryIn] = Field(min_length=1)

    @field_validator("asset_type_name")
    @classmethod
    def validate_asset_type_name(cls, v):
        if not v.strip():
            raise ValueError("Group name is required")
        return v


class AttributeValue(BaseModel):
    value: bool | float | str
    type: str  # Store tag: number, boolean or text
    date: dt.date
    entry_id: int
    field_id: int


class AssetView(BaseModel):
    asset_id: int
    asset_type_id: int
    attributes: dict[str, AttributeValue]


class AssetRead(BaseModel):
    id: int
    asset_type_id: int
    asset_type_name: str
    created_at: dt.datetime


class AssetDetail(AssetRead):
    attributes: dict[str, AttributeValue]


class EntryResult(BaseModel):
    field_id: int
    entry_id: int
    type: str
    value_type: str
    value: bool | float | str
    date: dt.date


class EntryFailure(BaseModel):
    field_id: int | None = None
    error: str
    message: str


class BatchResult(BaseModel):
    asset_id: int
    asset_type_id: int
    asset_type_name: str
    date: dt.date
    successful_entries: list[EntryResult]
    failed_entries: list[EntryFailure] = []


class DSLQueryResult(BaseModel):
    dsl_query: str
    asset_type_id: int
    asset_type_name: str
    assets: list[AssetView]


class DeleteResponse(BaseModel):
    ok: bool = True
    outcome: str
