# finance_tracker/config.py

import logging
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./finance_tracker.db")

# Session cookie signing key (set a real one in production!)
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin User")

PAGE_SIZE = int(os.getenv("PAGE_SIZE", "10"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
MIN_PASSWORD_LENGTH = 6

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
