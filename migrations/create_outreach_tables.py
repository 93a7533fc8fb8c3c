"""
Migration script to create the outreach tables.

Creates outreach_queue, vendors and vendor_activities if they do not exist.

Run this script with:
    python migrations/create_outreach_tables.py

Or from the app context:
    from migrations.create_outreach_tables import migrate
    migrate()
"""

import sys
import os

# Add parent directory to path to import outreach modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from outreach import create_app
from outreach.models import db, QueueTaskRecord, Vendor, VendorActivity
from sqlalchemy import inspect

TABLES = (QueueTaskRecord, Vendor, VendorActivity)


def table_exists(table_name):
    """Check if a table exists in the database."""
    inspector = inspect(db.engine)
    return table_name in inspector.get_table_names()


def migrate():
    """Create any missing outreach table."""
    app = create_app()

    with app.app_context():
        for model in TABLES:
            name = model.__tablename__
            if table_exists(name):
                print(f"✓ Table '{name}' already exists.")
                continue

            print(f"Creating '{name}' table...")
            try:
                model.__table__.create(db.engine, checkfirst=True)
            except Exception as e:
                print(f"✗ ERROR: Failed to create table '{name}': {e}")
                db.session.rollback()
                return False

            if not table_exists(name):
                print(f"✗ ERROR: Table '{name}' creation verification failed")
                return False

            print(f"✓ Successfully created '{name}' table")
            inspector = inspect(db.engine)
            for idx in inspector.get_indexes(name):
                print(f"  - index {idx['name']}: {idx['column_names']}")

        return True


if __name__ == "__main__":
    success = migrate()
    sys.exit(0 if success else 1)
