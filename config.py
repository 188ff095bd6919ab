"""
Runtime configuration

Values come from the environment, with a local .env file loaded first.
"""

import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "168"))
ADMIN_EMAILS = {e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()}
DEFAULT_CITY = os.getenv("DEFAULT_CITY", "Bengaluru")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))


def setup_logging(level: str = LOG_LEVEL):
    """Configures the root logger once."""
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"))
        root.addHandler(handler)
