import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from audit_trail.config import settings
from audit_trail.core.database import Base
from audit_trail.core.redaction import sensitive_fields

TEST_AUDIT_KEY = "test-audit-key-0123456789abcdef0123456789"


@pytest.fixture
def engine():
    # One shared in-memory connection so every session (and worker thread) sees the same tables.
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def audit_key(monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_KEY", TEST_AUDIT_KEY)
    return TEST_AUDIT_KEY


@pytest.fixture(autouse=True)
def reset_sensitive_fields():
    yield
    sensitive_fields.reset(settings.AUDIT_SENSITIVE_FIELDS)
