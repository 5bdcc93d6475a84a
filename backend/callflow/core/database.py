from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from callflow.core.config import settings

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect for upserts: {dialect}")
    return insert


def insert_ignore(db: Session, model, values: dict, index_elements: list[str]) -> bool:
    """Insert a row unless one already exists for the natural key.

    Returns True when this call inserted the row. Two concurrent callers racing
    on the same key get exactly one True between them.
    """
    insert = _dialect_insert(db)
    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    result = db.execute(stmt)
    return result.rowcount == 1
