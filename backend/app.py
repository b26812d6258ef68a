import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

import catalog
import query
import store
import translate
from db import create_db_and_tables, get_session
from dsl import Predicate
from errors import AssetTrackerError, InvalidFilter
from schemas import (
    AssetCreate,
    AssetDetail,
    AssetRead,
    AssetTypeCreate,
    AssetTypeRead,
    AssetTypeRename,
    AssetView,
    BatchResult,
    CategoryCreate,
    CategoryRead,
    CategoryRename,
    DeleteResponse,
    DSLQueryResult,
    EntryResult,
    EntryUpdate,
    EntryWrite,
    EnumOptionRead,
    FieldCreate,
    FieldRead,
    FieldUpdate,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Built on first use so a missing API key only matters to /nlquery
_translator = None


def get_translator() -> translate.NLTranslator:
    global _translator
    if _translator is None:
        _translator = translate.NLTranslator()
    return _translator


def _http_error(e: AssetTrackerError, dsl_query: str | None = None) -> HTTPException:
    """Map a tagged error onto the response the client sees."""
    if dsl_query is not None and e.dsl_query is None:
        e.dsl_query = dsl_query
    logger.warning(f"{e.kind}: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


def _server_error(session: Session, action: str, e: Exception, dsl_query: str | None = None) -> HTTPException:
    session.rollback()
    logger.error(f"Error {action}: {str(e)}")
    detail = {"error": "ServerError", "message": str(e)}
    if dsl_query is not None:
        detail["dsl_query"] = dsl_query
    return HTTPException(status_code=500, detail=detail)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()
    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(title="Asset Tracker API", version="1.0.0", lifespan=lifespan)

cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


# Categories


@app.get("/categories", response_model=list[CategoryRead])
def list_categories(session: Session = Depends(get_session)):
    try:
        return catalog.list_categories(session)
    except Exception as e:
        raise _server_error(session, "listing categories", e) from e


@app.post("/categories", response_model=CategoryRead, status_code=201)
def create_category(request: CategoryCreate, session: Session = Depends(get_session)):
    """Create a category. Names are unique ignoring case and spacing."""
    logger.info(f"Create category request: {request.name}")
    try:
        return catalog.create_category(session, request.name)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "creating category", e) from e


@app.put("/categories/{category_id}", response_model=CategoryRead)
def rename_category(category_id: int, request: CategoryRename, session: Session = Depends(get_session)):
    logger.info(f"Rename category request for ID: {category_id}")
    try:
        return catalog.rename_category(session, category_id, request.name)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "renaming category", e) from e


@app.delete("/categories/{category_id}", response_model=DeleteResponse)
def delete_category(category_id: int, session: Session = Depends(get_session)):
    """Delete a category with its asset types, fields, assets and entries."""
    logger.info(f"Delete category request for ID: {category_id}")
    try:
        outcome = catalog.delete_category(session, category_id)
        return DeleteResponse(outcome=outcome.value)
    except Exception as e:
        raise _server_error(session, "deleting category", e) from e


# Asset types


@app.get("/asset-types", response_model=list[AssetTypeRead])
def list_asset_types(category_id: int | None = Query(None), session: Session = Depends(get_session)):
    try:
        return catalog.list_asset_types(session, category_id)
    except Exception as e:
        raise _server_error(session, "listing asset types", e) from e


@app.post("/asset-types", response_model=AssetTypeRead, status_code=201)
def create_asset_type(request: AssetTypeCreate, session: Session = Depends(get_session)):
    logger.info(f"Create asset type request: {request.name} (category: {request.category_name})")
    try:
        return catalog.create_asset_type(session, request.category_name, request.name)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "creating asset type", e) from e


@app.put("/asset-types/{asset_type_id}", response_model=AssetTypeRead)
def rename_asset_type(asset_type_id: int, request: AssetTypeRename, session: Session = Depends(get_session)):
    logger.info(f"Rename asset type request for ID: {asset_type_id}")
    try:
        return catalog.rename_asset_type(session, asset_type_id, request.name)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "renaming asset type", e) from e


@app.delete("/asset-types/{asset_type_id}", response_model=DeleteResponse)
def delete_asset_type(asset_type_id: int, session: Session = Depends(get_session)):
    logger.info(f"Delete asset type request for ID: {asset_type_id}")
    try:
        outcome = catalog.delete_asset_type(session, asset_type_id)
        return DeleteResponse(outcome=outcome.value)
    except Exception as e:
        raise _server_error(session, "deleting asset type", e) from e


# Fields


@app.get("/fields", response_model=list[FieldRead])
def list_fields(asset_type_id: int | None = Query(None), session: Session = Depends(get_session)):
    """List fields, with enum options for Enum fields."""
    try:
        return catalog.list_fields(session, asset_type_id)
    except Exception as e:
        raise _server_error(session, "listing fields", e) from e


@app.get("/fields/enum-options", response_model=list[EnumOptionRead])
def list_enum_options(session: Session = Depends(get_session)):
    try:
        return catalog.list_enum_options(session)
    except Exception as e:
        raise _server_error(session, "listing enum options", e) from e


@app.post("/fields", response_model=FieldRead, status_code=201)
def create_field(request: FieldCreate, session: Session = Depends(get_session)):
    logger.info(
        f"Create field request: {request.name} ({request.value_type}) on asset type {request.asset_type_name}"
    )
    try:
        return catalog.create_field(
            session,
            request.asset_type_name,
            request.name,
            request.value_type,
            units=request.units,
            enum_options=request.enum_options,
            category_name=request.category_name,
        )
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "creating field", e) from e


@app.put("/fields/{field_id}", response_model=FieldRead)
def update_field(field_id: int, request: FieldUpdate, session: Session = Depends(get_session)):
    """Rename a field or change its units or enum options. The type is fixed."""
    logger.info(f"Update field request for ID: {field_id}")
    try:
        return catalog.update_field(
            session,
            field_id,
            request.name,
            request.value_type,
            units=request.units,
            enum_options=request.enum_options,
        )
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "updating field", e) from e


@app.delete("/fields/{field_id}", response_model=DeleteResponse)
def delete_field(field_id: int, session: Session = Depends(get_session)):
    logger.info(f"Delete field request for ID: {field_id}")
    try:
        outcome = catalog.delete_field(session, field_id)
        return DeleteResponse(outcome=outcome.value)
    except Exception as e:
        raise _server_error(session, "deleting field", e) from e


# Assets and entries


@app.get("/assets", response_model=list[AssetRead])
def list_assets(session: Session = Depends(get_session)):
    try:
        return query.list_assets(session)
    except Exception as e:
        raise _server_error(session, "listing assets", e) from e


@app.post("/assets", response_model=BatchResult, status_code=201)
def create_asset(request: AssetCreate, session: Session = Depends(get_session)):
    """Create an asset from a batch of entries.

    Entries that fail are reported in ``failed_entries``; the request only
    fails when no entry at all could be written.
    """
    logger.info(f"Create asset request: {request.asset_type_name} with {len(request.entries)} entries")
    try:
        return store.create_asset_with_entries(
            session, request.asset_type_name, request.entries, category_name=request.category_name
        )
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "creating asset", e) from e


@app.get("/assets/type/{asset_type_id}", response_model=list[AssetView])
def get_assets_by_type(
    asset_type_id: int,
    field: str | None = Query(None),
    operator: str | None = Query(None),
    value: str | None = Query(None),
    session: Session = Depends(get_session),
):
    """Assets of one type, optionally filtered by ``field operator value``."""
    filters = (field, operator, value)
    if any(f is not None for f in filters) and not all(f is not None for f in filters):
        raise _http_error(InvalidFilter("field, operator and value must be given together"))

    predicate = Predicate(field, operator, value) if field is not None else None
    try:
        return query.query_assets(session, asset_type_id, predicate)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "querying assets", e) from e


@app.get("/assets/{asset_id}", response_model=AssetDetail)
def get_asset(asset_id: int, session: Session = Depends(get_session)):
    try:
        return query.get_asset(session, asset_id)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "getting asset", e) from e


@app.delete("/assets/{asset_id}", response_model=DeleteResponse)
def delete_asset(asset_id: int, session: Session = Depends(get_session)):
    logger.info(f"Delete asset request for ID: {asset_id}")
    try:
        outcome = catalog.delete_asset(session, asset_id)
        return DeleteResponse(outcome=outcome.value)
    except Exception as e:
        raise _server_error(session, "deleting asset", e) from e


@app.post("/entries", response_model=EntryResult, status_code=201)
def write_entry(request: EntryWrite, session: Session = Depends(get_session)):
    """Record a value for an existing asset, overwriting any previous one."""
    logger.info(f"Write entry request: asset {request.asset_id}, field {request.field_id}")
    try:
        return store.write_entry(session, request.asset_id, request.field_id, request.value, request.date)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "writing entry", e) from e


@app.put("/entries/{kind}/{entry_id}", response_model=EntryResult)
def update_entry(kind: str, entry_id: int, request: EntryUpdate, session: Session = Depends(get_session)):
    logger.info(f"Update {kind} entry request for ID: {entry_id}")
    try:
        return store.update_entry(session, kind, entry_id, request.value, request.date)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "updating entry", e) from e


# Queries. Responses always echo the DSL text that was run.


@app.get("/dslquery", response_model=DSLQueryResult)
def dsl_query(query_text: str = Query(..., alias="query", min_length=1), session: Session = Depends(get_session)):
    logger.info(f"DSL query request: {query_text}")
    try:
        return query.run_dsl_query(session, query_text)
    except AssetTrackerError as e:
        raise _http_error(e, dsl_query=query_text) from e
    except Exception as e:
        raise _server_error(session, "running DSL query", e, dsl_query=query_text) from e


@app.get("/nlquery", response_model=DSLQueryResult)
def nl_query(
    query_text: str = Query(..., alias="query", min_length=1),
    timeout: float | None = Query(None, gt=0),
    session: Session = Depends(get_session),
    translator: translate.NLTranslator = Depends(get_translator),
):
    """Translate free text to DSL, then run it like any other DSL query."""
    logger.info(f"Natural language query request: {query_text}")
    try:
        generated = translate.translate_query(session, query_text, translator, timeout=timeout)
    except AssetTrackerError as e:
        raise _http_error(e) from e
    except Exception as e:
        raise _server_error(session, "translating query", e) from e

    try:
        return query.run_dsl_query(session, generated)
    except AssetTrackerError as e:
        raise _http_error(e, dsl_query=generated) from e
    except Exception as e:
        raise _server_error(session, "running generated DSL query", e, dsl_query=generated) from e


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Asset Tracker API", "docs": "/docs"}
