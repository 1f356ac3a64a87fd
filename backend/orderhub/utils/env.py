"""Environment helpers shared by the database layer and Alembic."""

import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_env_file() -> bool:
    """Load variables from a local .env file without overriding the real environment.

    Returns:
        True if a .env file was found and read
    """
    loaded = load_dotenv(override=False)

    if loaded:
        logger.info("Loaded local .env file (existing variables were NOT overwritten)")
    else:
        logger.debug("No local .env file found or loaded")
    return loaded
