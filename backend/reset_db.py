"""Reset database to clean state and recreate the schema."""
from sqlalchemy import text

import barbershop.models  # noqa: F401  registers every table on Base.metadata
from barbershop.lib.db import drop_db, engine, init_db

ENUM_TYPES = (
    "user_role",
    "availability_kind",
    "appointment_status",
    "payment_status",
)

print("Resetting database...")

drop_db()

if engine.dialect.name == "postgresql":
    with engine.connect() as conn:
        for enum_type in ENUM_TYPES:
            conn.execute(text(f"DROP TYPE IF EXISTS {enum_type} CASCADE"))
        conn.commit()

init_db()
print("Database reset complete!")
