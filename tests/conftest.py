"""
Pytest fixtures for testing
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import JSON, create_engine, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tesoreria.domain.context import Role, TenantContext
from tesoreria.infrastructure.db.models import (
    Category,
    Organization,
    PaymentRequestModel,
    User,
)
from tesoreria.infrastructure.db.session import Base


def _remap_jsonb() -> None:
    # SQLite has no JSONB, use JSON for tests
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()


@pytest.fixture
def db_engine():
    """
    In-memory SQLite engine with the full schema

    One shared connection, so API request handlers running in a worker
    thread see the same database as the test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _remap_jsonb()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@dataclass
class Tenant:
    """An organization with one active user per role and two categories"""
    org: Organization
    presidente: User
    secretaria: User
    delegado: User
    egreso_category: Category
    ingreso_category: Category
    extra_users: list[User] = field(default_factory=list)

    def ctx(self, user: User) -> TenantContext:
        return TenantContext.of(user.id, user.organization_id, user.role)

    @property
    def presidente_ctx(self) -> TenantContext:
        return self.ctx(self.presidente)

    @property
    def secretaria_ctx(self) -> TenantContext:
        return self.ctx(self.secretaria)

    @property
    def delegado_ctx(self) -> TenantContext:
        return self.ctx(self.delegado)


def add_user(db: Session, org: Organization, role: Role, name: str, email: str | None = None) -> User:
    user = User(
        organization_id=org.id,
        email=email or f"{name.lower().replace(' ', '.')}@org{org.id}.cl",
        password_hash="x",
        name=name,
        role=role.value,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def make_tenant(db_session):
    """Factory: make_tenant("CPP A") -> Tenant (committed)"""
    def _make(name: str = "CPP Demo") -> Tenant:
        org = Organization(name=name)
        db_session.add(org)
        db_session.flush()
        presidente = add_user(db_session, org, Role.PRESIDENTE, f"Presidente {org.id}")
        secretaria = add_user(db_session, org, Role.SECRETARIA, f"Secretaria {org.id}")
        delegado = add_user(db_session, org, Role.DELEGADO, f"Delegado {org.id}")
        egreso = Category(organization_id=org.id, name="Materiales", type="egreso")
        ingreso = Category(organization_id=org.id, name="Cuota Mensual", type="ingreso")
        db_session.add_all([egreso, ingreso])
        db_session.commit()
        return Tenant(org, presidente, secretaria, delegado, egreso, ingreso)

    return _make


@pytest.fixture
def tenant(make_tenant) -> Tenant:
    return make_tenant()


@pytest.fixture
def age_request(db_session):
    """Move a request's updated_at into the past by `days`"""
    def _age(request_id: int, days: int = 4) -> None:
        db_session.execute(
            update(PaymentRequestModel)
            .where(PaymentRequestModel.id == request_id)
            .values(updated_at=datetime.now(timezone.utc) - timedelta(days=days))
        )
        db_session.commit()

    return _age
