"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite database file (foreign keys on) with the
engine tables created from the models.
"""

import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import jobflow.models  # noqa: F401  registers the tables
from jobflow.core.cache import STAGE_CONFIG_CACHE
from jobflow.core.dependencies import get_db
from jobflow.core.permissions import Roles
from jobflow.db.base import Base
from jobflow.main import app
from jobflow.schemas.actor import Actor
from jobflow.schemas.conditions import JobTypeExclusion, NumericThreshold, PriorResponseEquals
from jobflow.schemas.question import QuestionCreate
from jobflow.schemas.stage import StageCreate
from jobflow.schemas.transition import TransitionCreate
from jobflow.services.stage_admin_service import StageAdminService

COMPANY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c1")
OTHER_COMPANY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c2")


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests, no external deps")
    config.addinivalue_line("markers", "db: uses the per-test SQLite database")


@pytest.fixture(autouse=True)
def clear_stage_cache():
    STAGE_CONFIG_CACHE.clear()
    yield
    STAGE_CONFIG_CACHE.clear()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobflow.db'}", poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def site_admin():
    return Actor(user_id=uuid.uuid4(), role=Roles.SITE_ADMIN)


@pytest.fixture
def owner():
    return Actor(user_id=uuid.uuid4(), role=Roles.OWNER, company_id=COMPANY_ID)


@pytest.fixture
def worker():
    return Actor(user_id=uuid.uuid4(), role=Roles.WORKER, company_id=COMPANY_ID)


@pytest.fixture
def other_owner():
    return Actor(user_id=uuid.uuid4(), role=Roles.OWNER, company_id=OTHER_COMPANY_ID)


def headers_for(actor: Actor) -> Dict[str, str]:
    headers = {"X-User-ID": str(actor.user_id), "X-User-Role": actor.role}
    if actor.company_id is not None:
        headers["X-Company-ID"] = str(actor.company_id)
    return headers


@dataclass
class Workflow:
    """Ids of a built stage set. Stage keys: lead, decision, contract, closed, lost."""

    company_id: Optional[uuid.UUID]
    stages: Dict[str, uuid.UUID] = field(default_factory=dict)
    questions: Dict[str, uuid.UUID] = field(default_factory=dict)
    transitions: Dict[str, uuid.UUID] = field(default_factory=dict)


async def build_workflow(db: AsyncSession, actor: Actor, company_id: Optional[uuid.UUID] = None) -> Workflow:
    """
    Five-stage workflow used across the suite.

    lead (initial):  qualified? (yes_no)           Yes -> decision, No -> lost
    decision:        accepted? (yes_no)
                     changes? (text, skipped when accepted = Yes)
                     site notes (text, skipped for emergency_repair jobs)
                                                   accepted Yes -> contract, accepted No -> lost
    contract:        deposit % (number)            >= 30 -> closed
                     notes (text, optional)
    closed:          completed status, no edges
    lost:            cancelled status, no edges
    """
    service = StageAdminService(db)
    flow = Workflow(company_id=company_id)

    specs = [
        ("lead", "Lead Qualification", 1, "planning", True),
        ("decision", "Client Decision", 2, "planning", False),
        ("contract", "Contract & Deposit", 3, "active", False),
        ("closed", "Handover & Close", 4, "completed", False),
        ("lost", "Lost", 5, "cancelled", False),
    ]
    for key, name, order, status, initial in specs:
        stage = await service.create_stage(
            StageCreate(
                company_id=company_id,
                name=name,
                sequence_order=order,
                maps_to_status=status,
                is_initial=initial,
                max_duration_hours=48,
            ),
            actor,
        )
        flow.stages[key] = stage.id

    async def add(key, stage_key, text, response_type, order, **extra):
        question = await service.add_question(
            flow.stages[stage_key],
            QuestionCreate(question_text=text, response_type=response_type, sequence_order=order, **extra),
            actor,
        )
        flow.questions[key] = question.id

    await add("qualified", "lead", "Have you qualified this lead?", "yes_no", 1)
    await add("accepted", "decision", "Has the client accepted the quote?", "yes_no", 1)
    await add(
        "changes",
        "decision",
        "Are there any requested changes?",
        "text",
        2,
        skip_conditions=[PriorResponseEquals(question_id=flow.questions["accepted"], value="yes")],
    )
    await add(
        "site_notes",
        "decision",
        "Describe the site",
        "text",
        3,
        skip_conditions=[JobTypeExclusion(job_types=["emergency_repair"])],
    )
    await add("deposit", "contract", "What percentage deposit was paid?", "number", 1)
    await add("notes", "contract", "Anything else?", "text", 2, is_required=False)

    async def connect(key, source, target, **extra):
        edge = await service.create_transition(
            TransitionCreate(from_stage_id=flow.stages[source], to_stage_id=flow.stages[target], **extra),
            actor,
        )
        flow.transitions[key] = edge.id

    await connect("lead_yes", "lead", "decision", trigger_response="Yes", sequence_order=1)
    await connect("lead_no", "lead", "lost", trigger_response="No", sequence_order=2)
    await connect(
        "accepted_yes",
        "decision",
        "contract",
        trigger_question_id=flow.questions["accepted"],
        trigger_response="Yes",
        sequence_order=1,
    )
    await connect(
        "accepted_no",
        "decision",
        "lost",
        trigger_question_id=flow.questions["accepted"],
        trigger_response="No",
        sequence_order=2,
    )
    await connect(
        "deposit_paid",
        "contract",
        "closed",
        trigger_question_id=flow.questions["deposit"],
        conditions=[NumericThreshold(operator=">=", threshold=30)],
    )

    await db.commit()
    return flow


@pytest_asyncio.fixture
async def platform_flow(db, site_admin) -> Workflow:
    return await build_workflow(db, site_admin)
