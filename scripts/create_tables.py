#!/usr/bin/env python3
"""
ImmunoTrack - Database Table Creation Script
Creates all tables using SQLAlchemy ORM and seeds the national esquema
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from immunotrack.models import Base
from immunotrack.config import settings
from immunotrack.services.database import build_engine, build_session_factory
from immunotrack.services.repository import ImmunizationRepository


def create_all_tables():
    """Create all database tables and load the national schedule"""
    print("="*60)
    print("ImmunoTrack - Database Table Creation")
    print("="*60)

    db_url = settings.database_url
    print(f"\nConnecting to database...")
    print(f"URL: {db_url.split('@')[1] if '@' in db_url else 'hidden'}")

    try:
        engine = build_engine(db_url, echo=True)

        # Create all tables
        print("\nCreating all tables...")
        Base.metadata.create_all(engine)

        print("\nTables created:")
        for table in Base.metadata.sorted_tables:
            print(f"  - {table.name}")

        # Seed the esquema (no-op when already present)
        print("\nSeeding national schedule...")
        with build_session_factory(engine)() as session:
            counts = ImmunizationRepository(session).seed_national_schedule()
        print(f"  - {counts['vaccines']} vaccines inserted")
        print(f"  - {counts['entries']} schedule entries inserted")

        print("\n" + "="*60)
        print("✓ Database ready!")
        print("="*60)
        return 0

    except Exception as e:
        print(f"\n✗ Error creating tables: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(create_all_tables())
