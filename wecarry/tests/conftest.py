import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from wecarry import create_app
from wecarry.core.bootstrap import get_core
from wecarry.core.users.models import User
from wecarry.domains.requests.models import Location, Request, RequestStatus
from wecarry.extensions import db


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")
    config.addinivalue_line("markers", "slow: Slow running tests")


@pytest.fixture()
def app():
    """
    Create a per-test app with a fresh in-memory schema.

    The worker is not started; tests run queued jobs with ``core.worker.drain()``.
    """
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    try:
        yield app
    finally:
        db.session.remove()
        db.drop_all()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def core(app):
    return get_core()


@pytest.fixture()
def make_user(app):
    counter = {"n": 0}

    def _make(nickname=None, **fields):
        counter["n"] += 1
        nickname = nickname or f"user{counter['n']}"
        user = User(email=f"{nickname.lower()}@example.com", nickname=nickname, **fields)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def make_request(app):
    def _make(creator, title="Peanut butter", status=RequestStatus.OPEN, provider=None, **fields):
        request = Request(
            created_by_id=creator.id,
            provider_id=provider.id if provider else None,
            title=title,
            description=fields.pop("description", "Two jars please"),
            destination=Location(description="Nairobi, Kenya", country="KE"),
            status=status.value,
            **fields,
        )
        db.session.add(request)
        db.session.commit()
        return request

    return _make
