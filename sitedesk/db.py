from typing import Optional

from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from .config import settings


Base = declarative_base()


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # one shared connection, otherwise every session gets its own empty memory db
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, **kwargs)
    return create_engine(
        url,
        future=True,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,  # Recycle connections after 1 hour
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    # Fresh Session per backend call; never a scoped_session under asyncio
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    from .models import models  # noqa: F401  (registers tables)
    Base.metadata.create_all(bind=engine)
