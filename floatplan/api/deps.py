"""
FastAPI dependencies.
"""

from functools import lru_cache

from floatplan.core.config import settings
from floatplan.data.postgres import PostgresStore
from floatplan.data.store import Store


@lru_cache()
def _postgres_store() -> PostgresStore:
    return PostgresStore(settings.database_url)


def get_store() -> Store:
    """Store used by request handlers; override in tests."""
    return _postgres_store()
