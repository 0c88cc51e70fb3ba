from collections.abc import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from alert_engine.core.config import Settings, get_settings


def build_engine(settings: Settings) -> Engine:
    # Every tenant worker holds its own connection, plus the ledger and API sessions.
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=max(5, settings.alert_engine_max_workers + 2),
    )


engine = build_engine(get_settings())
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    with SessionLocal() as db:
        yield db


def check_db_connection(db: Session) -> tuple[bool, str | None]:
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        db.rollback()
        return False, str(exc)
    return True, None
