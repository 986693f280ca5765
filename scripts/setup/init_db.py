"""
Initialize database — creates all tables, optionally seeds a demo screen.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py
       python scripts/setup/init_db.py --seed-demo
"""

import sys
import os
import argparse
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from screen_monitor.database import create_tables, engine, SessionLocal
from screen_monitor.config import settings
from screen_monitor.models import User, Company, VideoScreen
from sqlalchemy import text, inspect


def seed_demo():
    """One technician, one manager, one company and one screen to play with."""
    db = SessionLocal()
    try:
        if db.query(VideoScreen).filter(VideoScreen.installation_code == "DEMO-001").first():
            print("ℹ️  Demo data already present")
            return
        technician = User(name="Demo Technician", email="tech@example.com", role="technician")
        manager = User(name="Demo Manager", email="manager@example.com", role="manager")
        company = Company(name="Demo Company", manager=manager)
        db.add_all([technician, manager, company])
        db.flush()
        db.add(VideoScreen(installation_code="DEMO-001", ip="127.0.0.1:8080", status="active",
                           assigned_user_id=technician.id, company_id=company.id))
        db.commit()
        print("✅ Demo screen DEMO-001 created")
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create Screen Monitor tables")
    parser.add_argument("--seed-demo", action="store_true", help="Insert a demo screen")
    args = parser.parse_args()

    print("🗄️  Screen Monitor DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running and DATABASE_URL is correct.")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"✅ Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if args.seed_demo:
        seed_demo()

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn screen_monitor.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
