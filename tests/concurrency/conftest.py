"""
Fixtures for multi-connection tests.

The suite-wide in-memory SQLite database lives on a single connection, so
these tests build their own engine: PostgreSQL when DATABASE_URL points at
one, otherwise a SQLite file whose transactions start with BEGIN IMMEDIATE
so writers queue on the database lock instead of failing.
"""

from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from commerce_kernel.db.base import Base
from commerce_modules._orm_registry import import_all_orm_models
from tests.factories import get_database_url, is_postgres_url


def _serialized_sqlite_engine(path):
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@pytest.fixture
def concurrent_engine(tmp_path):
    url = get_database_url()
    if is_postgres_url(url):
        engine = create_engine(url, pool_size=20, max_overflow=10)
    else:
        engine = _serialized_sqlite_engine(tmp_path / "concurrency.db")
    import_all_orm_models()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(concurrent_engine):
    return sessionmaker(bind=concurrent_engine, expire_on_commit=False)


@pytest.fixture
def isolated_tenant_id() -> str:
    """A fresh tenant so shared PostgreSQL databases need no cleanup."""
    return f"tenant-{uuid4().hex[:8]}"
