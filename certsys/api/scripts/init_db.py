"""
Database initialization script for deployment.
Waits for the database, creates all tables from the models and reports
what is already there.

Usage:
    python certsys/api/scripts/init_db.py
"""
import sys
import os
import time

# Ensure project root is importable
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


def wait_for_db(app, max_retries=5, retry_delay=10):
    """
    Wait for database to be available with retries.
    Supabase pooler connections can be slow to establish after a cold start.
    """
    from certsys.api import db
    from sqlalchemy import text
    from sqlalchemy.exc import OperationalError

    for attempt in range(max_retries):
        try:
            with app.app_context():
                db.session.execute(text("SELECT 1"))
                db.session.commit()
                print("  Database connection successful!")
                return True
        except OperationalError as e:
            if attempt < max_retries - 1:
                print(f"  Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
                print(f"  Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)
            else:
                print(f"  Database connection failed after {max_retries} attempts: {e}")
                raise
    return False


def report_counts():
    from certsys.api.models import User, CertificateRequest, Notification, PendingRegistration

    admins = User.query.filter_by(role='admin').count()
    chairmen = User.query.filter_by(role='purok_chairman').count()
    residents = User.query.filter_by(role='resident').count()
    print(f"  Users: {admins} admin(s), {chairmen} purok chairman(s), {residents} resident(s)")
    print(f"  Certificate requests: {CertificateRequest.query.count()}")
    print(f"  Pending registrations: {PendingRegistration.query.filter_by(status='pending').count()}")
    print(f"  Notifications: {Notification.query.count()}")
    if admins == 0:
        print("  No admin yet. Create one with: python certsys/api/scripts/create_admin.py")
    if chairmen == 0:
        print("  No purok chairmen yet. Residents cannot register until one exists:")
        print("    python certsys/api/scripts/create_admin.py --role purok_chairman --purok 'Purok 1'")


def main():
    from certsys.api.app import create_app
    from certsys.api import db

    print("=" * 50)
    print("  Barangay Luna CertSys - Database Initialization")
    print("=" * 50)

    app = create_app()
    print("\n[1/3] Waiting for database...")
    wait_for_db(app)

    with app.app_context():
        print("\n[2/3] Creating tables...")
        db.create_all()
        print("  Tables ready.")

        print("\n[3/3] Current data:")
        report_counts()

    print("\nDone.")


if __name__ == '__main__':
    main()
