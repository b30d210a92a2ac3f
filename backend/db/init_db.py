# backend/db/init_db.py
"""
Create any missing tables from db.models. Existing tables are left as-is
(no migrations here).
"""
from sqlalchemy import inspect

from db.models import Base
from db.session import engine


def init_db() -> list[str]:
    """Returns the names of tables that did not exist before."""
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    return [name for name in Base.metadata.tables if name not in existing]


def main():
    created = init_db()
    if created:
        print(f"✅ Created tables: {', '.join(created)}")
    else:
        print("✅ All tables already exist.")


if __name__ == "__main__":
    main()
