#!/usr/bin/env python3
"""
seed.py: create the auth tables and demo users for local dev
"""
import argparse, sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sqlalchemy import delete, select

from shops_auth.core.config import get_settings
from shops_auth.core.logging import configure_logging, get_logger
from shops_auth.db.models import AuditLog, ProviderAccount, RefreshToken, User, UserRole
from shops_auth.db.session import Database
from shops_auth.security.passwords import PasswordHasher

DEMO_PASSWORD = "Demo123!"
DEMO_USERS = [
    ("customer1@demo.com", "John Customer", UserRole.CUSTOMER),
    ("customer2@demo.com", "Sarah Customer", UserRole.CUSTOMER),
    ("merchant1@demo.com", "Raj Merchant", UserRole.MERCHANT),
    ("merchant2@demo.com", "Priya Merchant", UserRole.MERCHANT),
    ("rider1@demo.com", "Amit Rider", UserRole.RIDER),
    ("rider2@demo.com", "Kavya Rider", UserRole.RIDER),
]

logger = get_logger("shops_auth.seed")


def seed(database: Database, hasher: PasswordHasher, reset: bool = False) -> int:
    created = 0
    with database.session() as db:
        if reset:
            for model in (AuditLog, RefreshToken, ProviderAccount, User):
                db.execute(delete(model))
        password_hash = hasher.hash(DEMO_PASSWORD)
        for email, name, role in DEMO_USERS:
            if db.execute(select(User.id).where(User.email == email)).first():
                continue
            db.add(User(email=email, name=name, password_hash=password_hash, role=role, email_verified=True))
            created += 1
    return created


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    ap.add_argument("--reset", action="store_true", help="Delete existing auth data first")
    args = ap.parse_args()

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    database = Database(args.database_url or settings.DATABASE_URL)
    try:
        database.create_all()
        created = seed(database, PasswordHasher(settings.BCRYPT_ROUNDS), reset=args.reset)
    finally:
        database.dispose()

    logger.info("seed complete", created=created, users=[u[0] for u in DEMO_USERS])
    print(f"Seeded {created} demo users (password: {DEMO_PASSWORD})")

if __name__ == "__main__":
    main()
