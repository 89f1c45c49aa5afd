"""
conftest.py — Shared Test Fixtures for crm-board

Provides an in-memory SQLite database behind the SQL gateway, tenant
contexts, a seeded pipeline (three stages, five leads) and a FastAPI
TestClient with auth overridden.

Business Rules:
- All tests run against an isolated in-memory DB
- Auth is overridden so tests don't need BaaS sessions
- Each test function gets freshly created tables

Called by: all test files via pytest autodiscovery
Depends on: crmboard.models (Base), crmboard.gateway.SqlGateway, crmboard.dependencies
"""

import os

os.environ["APP_ENV"] = "test"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from crmboard.context import TenantContext
from crmboard.database import make_session_factory
from crmboard.gateway import SqlGateway
from crmboard.models import Base, Lead, Pipeline, Profile, Stage

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = make_session_factory(engine)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """Turn on SQLite foreign key enforcement."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


TENANT = "empresa-1"
OTHER_TENANT = "empresa-2"


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def gw(tmp_path) -> SqlGateway:
    return SqlGateway(TestSessionLocal, storage_root=str(tmp_path / "storage"))


@pytest.fixture()
def ctx(db_session: Session) -> TenantContext:
    """Company admin of empresa-1."""
    db_session.add(Profile(uuid="user-admin", empresa_id=TENANT, full_name="Ana Admin",
                           email="ana@example.com", is_admin=True))
    db_session.commit()
    return TenantContext(empresa_id=TENANT, user_id="user-admin", is_admin=True)


@pytest.fixture()
def seller_ctx(db_session: Session) -> TenantContext:
    """Non-admin seller of empresa-1."""
    db_session.add(Profile(uuid="user-seller", empresa_id=TENANT, full_name="Sergio Seller",
                           email="sergio@example.com", is_admin=False))
    db_session.commit()
    return TenantContext(empresa_id=TENANT, user_id="user-seller")


@pytest.fixture()
def other_ctx() -> TenantContext:
    """Admin of a different company."""
    return TenantContext(empresa_id=OTHER_TENANT, user_id="user-other", is_admin=True)


@pytest.fixture()
def board_data(db_session: Session) -> dict:
    """Pipeline P: Prospecting (L1, L2, L3), Qualification (empty), Proposal (L4, L5).

    Within a stage leads load newest first, so created_at is staggered to
    give the listed order.
    """
    now = datetime.now(timezone.utc)
    db_session.add(Pipeline(id="pipe-1", empresa_id=TENANT, name="Sales", display_order=0))
    db_session.add(Pipeline(id="pipe-2", empresa_id=TENANT, name="Renewals", display_order=1))
    db_session.flush()
    for i, (sid, name) in enumerate(
        [("st-prosp", "Prospecting"), ("st-qual", "Qualification"), ("st-prop", "Proposal")]
    ):
        db_session.add(Stage(id=sid, empresa_id=TENANT, pipeline_id="pipe-1", name=name,
                             color="#3B82F6", position=i))
    db_session.add(Stage(id="st-renew", empresa_id=TENANT, pipeline_id="pipe-2",
                         name="Renewal due", position=0))
    db_session.flush()

    layout = [("L1", "st-prosp"), ("L2", "st-prosp"), ("L3", "st-prosp"),
              ("L4", "st-prop"), ("L5", "st-prop")]
    for age, (lid, sid) in enumerate(layout):
        db_session.add(Lead(
            id=lid, empresa_id=TENANT, pipeline_id="pipe-1", stage_id=sid,
            name=f"Lead {lid}", company=f"{lid} Ltda", phone="5511999990000",
            status="warm", tags=["vip"] if lid in ("L1", "L4") else [],
            created_at=now - timedelta(minutes=age),
        ))
    db_session.commit()
    return {
        "pipeline_id": "pipe-1",
        "stages": ["st-prosp", "st-qual", "st-prop"],
        "leads": {"st-prosp": ["L1", "L2", "L3"], "st-prop": ["L4", "L5"]},
    }


@pytest.fixture()
def client(gw: SqlGateway, ctx: TenantContext) -> TestClient:
    """FastAPI TestClient with auth overridden to return the admin context."""
    from crmboard.dependencies import get_gateway, require_context
    from crmboard.main import app
    from crmboard.routers import board

    app.dependency_overrides[get_gateway] = lambda: gw
    app.dependency_overrides[require_context] = lambda: ctx
    board._boards.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    board._boards.clear()
