"""
Database initialization script
Run this to create tables and seed a demo worker and job site
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from autotime.core.database import engine, Base, SessionLocal
import autotime.models  # noqa: F401  register all tables
from autotime.models.worker import Worker, Job


def init_db():
    """Initialize database with tables"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("✓ Tables created successfully")


def seed_data():
    """Seed demo reference data"""
    db = SessionLocal()

    try:
        print("\nSeeding demo data...")

        job = db.query(Job).filter(Job.name == "Demo Site").first()
        if not job:
            job = Job(
                name="Demo Site",
                latitude=51.5074,
                longitude=-0.1278,
                geofence_radius=200,
            )
            db.add(job)
            print("✓ Demo job site created (200m geofence)")

        worker = db.query(Worker).filter(Worker.email == "worker@example.com").first()
        if not worker:
            worker = Worker(
                name="Demo Worker",
                email="worker@example.com",
                shift_start="08:00",
                shift_end="16:00",
            )
            db.add(worker)
            print("✓ Demo worker created (shift 08:00-16:00)")

        db.commit()
        print("\n✓ Database seeded successfully!")

    except Exception as e:
        print(f"\n✗ Error seeding data: {e}")
        db.rollback()
    finally:
        db.close()


if __name__ == "__main__":
    print("=" * 60)
    print("AutoTime Geofence - Database Initialization")
    print("=" * 60)
    init_db()
    seed_data()
