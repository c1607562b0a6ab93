"""
Initialize the database.

Run this script once to set up the database:
    python init_db.py
"""

from gatelink.database import engine, Base
from gatelink.models import Link, Click  # noqa: F401  (register tables)


def init_database():
    """Create all database tables"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Database tables created successfully!")
    print("   - links (short links and access policies)")
    print("   - clicks (click events)")


if __name__ == "__main__":
    print("=" * 50)
    print("GateLink - Database Initialization")
    print("=" * 50)

    init_database()

    print("\nYou can now start the server with:")
    print("    uvicorn gatelink.main:app --reload")
