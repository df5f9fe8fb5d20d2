from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings


def make_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # request handlers and pipeline workers share the engine across threads
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    # models must be imported so their tables are registered on Base.metadata
    from app.db.base import Base
    from app.models import order, payment_event  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
