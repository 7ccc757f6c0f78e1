from datetime import datetime, timezone

import pytest

from models.database import create_db_engine, init_db, make_session_factory
from core.audit import AuditLogger
from core.evaluator import PermissionEvaluator
from core.policy_store import PolicyStore
from core.settings import Settings
from core.user_repository import UserRepository
from scenarios.demo_data import load_demo_data

# 10:00 and 20:00 in Asia/Phnom_Penh
BUSINESS_HOURS = datetime(2024, 6, 3, 3, 0, tzinfo=timezone.utc)
AFTER_HOURS = datetime(2024, 6, 3, 13, 0, tzinfo=timezone.utc)

_ENV_VARS_TO_ISOLATE = [
    "ANGKOR_CACHE_ENABLED",
    "ANGKOR_CACHE_TTL_SECONDS",
    "ANGKOR_UNLISTED_FIELD_POLICY",
    "ANGKOR_AUDIT_ENABLED",
    "ANGKOR_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def env_isolation(monkeypatch):
    """Run every test against default settings."""
    for name in _ENV_VARS_TO_ISOLATE:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def demo(engine, session_factory):
    """Database loaded with the demo tenants, users and records."""
    return load_demo_data(session_factory=session_factory, bind=engine)


@pytest.fixture
def store(session_factory):
    return PolicyStore(session_factory)


@pytest.fixture
def users(session_factory):
    return UserRepository(session_factory)


@pytest.fixture
def audit(session_factory):
    return AuditLogger(session_factory)


@pytest.fixture
def make_evaluator(demo, session_factory):
    """Build an evaluator over the demo data with a fixed clock."""

    def _make(moment=BUSINESS_HOURS, cache=None, **settings):
        return PermissionEvaluator(
            PolicyStore(session_factory),
            UserRepository(session_factory),
            audit=AuditLogger(session_factory),
            cache=cache,
            clock=lambda: moment,
            settings=Settings(**settings),
        )

    return _make


@pytest.fixture
def evaluator(make_evaluator):
    return make_evaluator()
