from sqlmodel import Session, select

import catalog
import store
from db import engine
from models import Category

SAMPLE_SCHEMA = {
    "Produce": {
        "lettuce": [
            ("weight", "Number", "lbs", None),
            ("organic", "Boolean", None, None),
            ("variety", "Text", None, None),
            ("destination", "Enum", None, ["Internal", "Market", "Compost"]),
        ],
        "roma tomatoes": [
            ("amount", "Number", "lbs", None),
            ("destination", "Enum", None, ["Internal", "Market", "Compost"]),
        ],
    },
    "Livestock": {
        "cows": [
            ("name", "Text", None, None),
            ("born weight", "Number", "lbs", None),
            ("age", "Number", "years", None),
            ("covid vax", "Boolean", None, None),
        ],
    },
}

# (asset type, {field name: value}, date)
SAMPLE_ASSETS = [
    ("lettuce", {"weight": 120, "organic": True, "variety": "Romaine", "destination": "Market"}, "2024-01-15"),
    ("lettuce", {"weight": 80, "organic": False, "variety": "Iceberg", "destination": "Internal"}, "2024-01-16"),
    ("roma tomatoes", {"amount": 75, "destination": "Internal"}, "2024-01-16"),
    ("cows", {"name": "Bess", "born weight": 210, "age": 4, "covid vax": True}, "2024-01-15"),
    ("cows", {"name": "Daisy", "born weight": 180, "age": 6, "covid vax": False}, "2024-01-17"),
]


def seed_database():
    """Seed the database with a sample farm schema and a few assets."""
    with Session(engine) as session:
        # Check if data already exists
        existing = session.exec(select(Category)).first()
        if existing:
            print("Database already has data, skipping seed.")
            return

        field_ids = {}
        for category_name, asset_types in SAMPLE_SCHEMA.items():
            catalog.create_category(session, category_name)
            for asset_type_name, fields in asset_types.items():
                catalog.create_asset_type(session, category_name, asset_type_name)
                for name, value_type, units, options in fields:
                    field = catalog.create_field(
                        session, asset_type_name, name, value_type, units=units, enum_options=options
                    )
                    field_ids[(asset_type_name, name)] = field.id

        for asset_type_name, values, entry_date in SAMPLE_ASSETS:
            entries = [
                {"field_id": field_ids[(asset_type_name, name)], "value": value, "date": entry_date}
                for name, value in values.items()
            ]
            store.create_asset_with_entries(session, asset_type_name, entries)

        print(f"Seeded database with {len(field_ids)} fields and {len(SAMPLE_ASSETS)} sample assets.")


if __name__ == "__main__":
    from db import create_db_and_tables

    create_db_and_tables()
    seed_database()
