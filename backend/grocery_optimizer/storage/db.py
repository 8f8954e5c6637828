from sqlmodel import SQLModel, Session, create_engine

from grocery_optimizer.config import settings


def _connect_args(dsn: str) -> dict:
    # SQLite connections are shared across FastAPI's worker threads
    if dsn.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_dsn,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.database_dsn),
)


def create_db_and_tables() -> None:
    # Import models so their tables are registered on the metadata
    from grocery_optimizer.storage import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    return Session(engine)
