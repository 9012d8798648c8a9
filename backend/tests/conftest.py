import uuid
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fiscalhost.core.config import get_settings
from fiscalhost.models.collective import (
    Base,
    Collective,
    Expense,
    LegalDocument,
    RequiredLegalDocument,
)


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class Factory:
    """Small row builders; every call commits."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def collective(self, *, type="COLLECTIVE", host=None, slug=None, **kwargs):
        slug = slug or f"c-{uuid.uuid4().hex[:10]}"
        kwargs.setdefault("name", slug)
        return self._save(
            Collective(
                slug=slug,
                type=type,
                host_collective_id=host.id if host is not None else None,
                **kwargs,
            )
        )

    def host(self, *, required=("US_TAX_FORM",), **kwargs):
        kwargs.setdefault("name", "Host")
        host = self.collective(type="ORGANIZATION", is_host_account=True, **kwargs)
        for document_type in required:
            self._save(RequiredLegalDocument(host_collective_id=host.id, document_type=document_type))
        return host

    def user(self, **kwargs):
        return self.collective(type="USER", **kwargs)

    def expense(self, collective, submitter, amount, *, type="INVOICE", status="PENDING", incurred_at=None, **kwargs):
        return self._save(
            Expense(
                collective_id=collective.id,
                from_collective_id=submitter.id,
                amount=amount,
                type=type,
                status=status,
                # SQLite drops the offset, so store the UTC instant.
                incurred_at=(incurred_at or datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)).astimezone(timezone.utc),
                **kwargs,
            )
        )

    def legal_document(self, submitter, year, status="RECEIVED", document_type="US_TAX_FORM"):
        return self._save(
            LegalDocument(
                collective_id=submitter.id,
                year=year,
                document_type=document_type,
                request_status=status,
            )
        )


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest_asyncio.fixture
async def client(session_factory):
    """In-process ASGI client bound to the in-memory database."""
    from fiscalhost.core.dependencies import get_db
    from fiscalhost.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
