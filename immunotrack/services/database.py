"""
ImmunoTrack - Database Connection
Engine and session factory shared by the API, the worker and the scripts
"""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from immunotrack.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """
    Create a SQLAlchemy engine

    Args:
        database_url: Connection URL (defaults to the configured one)
        **kwargs: Extra create_engine options

    Returns:
        Engine with pre-ping enabled
    """
    url = database_url or settings.database_url
    options = {"pool_pre_ping": True, "echo": settings.database_echo}
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.database_pool_size
    options.update(kwargs)

    engine = create_engine(url, **options)
    logger.info(f"✓ Database engine initialized ({engine.url.get_backend_name()})")
    return engine


def build_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Session factory bound to the given (or a new default) engine"""
    return sessionmaker(bind=engine or build_engine(), expire_on_commit=False)
