from typing import Iterator

from fastapi import Request
from sqlalchemy import Table, create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    pass


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Check your .env file.")
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    # expire_on_commit=False keeps rows readable after commit in handlers.
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # Importing registers every table on Base.metadata.
    from formations import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    elif dialect in ("mysql", "mariadb"):
        from sqlalchemy.dialects.mysql import insert as dialect_insert
    else:
        raise RuntimeError(f"no native upsert for dialect {dialect!r}")
    return dialect, dialect_insert


def upsert(session: Session, table: Table, values: dict, update_keys: list[str], key: str) -> None:
    """Insert ``values`` into ``table``, or update ``update_keys`` when ``key`` already exists.

    Relies on the store's own insert-on-conflict primitive, which is what keeps
    concurrent writers from creating two rows for one key. ``key`` must carry a
    unique constraint.
    """
    dialect, dialect_insert = _dialect_insert(session)
    stmt = dialect_insert(table).values(**values)

    if dialect in ("mysql", "mariadb"):
        changes = {name: stmt.inserted[name] for name in update_keys}
    else:
        changes = {name: stmt.excluded[name] for name in update_keys}
    if "updated_at" in table.c:
        # onupdate defaults are not applied to conflict updates.
        changes["updated_at"] = func.now()

    if dialect in ("mysql", "mariadb"):
        stmt = stmt.on_duplicate_key_update(changes)
    else:
        stmt = stmt.on_conflict_do_update(index_elements=[table.c[key]], set_=changes)
    session.execute(stmt)


def get_db(request: Request) -> Iterator[Session]:
    """One session per request, always closed."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
