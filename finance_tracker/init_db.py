# finance_tracker/init_db.py
#
# python -m finance_tracker.init_db

import logging
import sys

from . import config, crud
from .auth import hash_password
from .database import SessionLocal, init_db
from .schemas import ProfileIn

logger = logging.getLogger(__name__)


def ensure_admin(db, email, password, full_name=config.ADMIN_NAME):
    """Create the admin profile, or promote an existing one with that email."""
    existing = crud.get_profile_by_email(db, email)
    if existing:
        if not existing.is_admin:
            existing.is_admin = True
            db.commit()
            logger.info("Promoted %s to admin", existing.email)
        else:
            logger.info("Admin user already exists")
        return existing

    data = ProfileIn(email=email, password=password, full_name=full_name, is_admin=True)
    return crud.create_profile(db, data, hash_password(data.password))


def main():
    config.configure_logging()

    logger.info("Setting up database schema...")
    init_db()
    logger.info("Database schema set up successfully")

    if not (config.ADMIN_EMAIL and config.ADMIN_PASSWORD):
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin user")
        return 0

    db = SessionLocal()
    try:
        admin = ensure_admin(db, config.ADMIN_EMAIL, config.ADMIN_PASSWORD)
        logger.info("Admin user ready: %s", admin.email)
    except Exception:
        logger.exception("Failed to create admin user")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
