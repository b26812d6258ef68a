import os

# Point the app at a throwaway in-memory database before anything imports db
os.environ["DATABASE_URL"] = "sqlite://"

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

import catalog
from app import app
from db import create_db_and_tables, engine, get_session


@pytest.fixture(scope="function")
def session():
    """Create a test database session on a fresh schema."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(session):
    """Create a test client with dependency override."""

    def get_test_session():
        yield session

    app.dependency_overrides[get_session] = get_test_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def farm(session):
    """A small farm schema: lettuce under Produce, cows under Livestock."""
    produce = catalog.create_category(session, "Produce")
    livestock = catalog.create_category(session, "Livestock")
    lettuce = catalog.create_asset_type(session, "Produce", "lettuce")
    cows = catalog.create_asset_type(session, "Livestock", "cows")

    weight = catalog.create_field(session, "lettuce", "weight", "Number", units="lbs")
    organic = catalog.create_field(session, "lettuce", "organic", "Boolean")
    variety = catalog.create_field(session, "lettuce", "variety", "Text")
    destination = catalog.create_field(
        session, "lettuce", "destination", "Enum", enum_options=["Internal", "Market", "Compost"]
    )
    name = catalog.create_field(session, "cows", "name", "Text")
    born_weight = catalog.create_field(session, "cows", "born weight", "Number", units="lbs")

    return SimpleNamespace(
        produce_id=produce.id,
        livestock_id=livestock.id,
        lettuce_id=lettuce.id,
        cows_id=cows.id,
        weight_id=weight.id,
        organic_id=organic.id,
        variety_id=variety.id,
        destination_id=destination.id,
        name_id=name.id,
        born_weight_id=born_weight.id,
    )
