from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from servicedesk.core.config import settings


def build_engine(database_url: str):
    """Create an engine with dialect-specific connection settings."""
    url = make_url(database_url)
    backend = url.get_backend_name()
    connect_args: dict = {}
    engine_kwargs: dict = {"pool_pre_ping": True}

    if backend.startswith("postgresql"):
        connect_args["options"] = "-c timezone=utc"
    elif backend == "sqlite":
        # Sync endpoints run in a threadpool; sessions cross threads.
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30
        if url.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool

    return create_engine(database_url, connect_args=connect_args, **engine_kwargs)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
