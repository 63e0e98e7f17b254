import os
import logging

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Comma separated list, "*" allows any origin
CLIENT_ORIGINS = [o.strip() for o in os.getenv("CLIENT_ORIGIN", "*").split(",") if o.strip()]

PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", 72))

DEFAULT_CATEGORIES = ["Furniture", "Electronics", "Clothing", "Books", "Home & Kitchen"]


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
