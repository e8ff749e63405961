import os
import tempfile

# The application is configured from the environment at import time
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('AUDIT_LOG_DIR', tempfile.mkdtemp(prefix='agora-audit-'))
os.environ.setdefault('RATELIMIT_ENABLED', '0')
os.environ.setdefault('REQUIRE_EMAIL_VERIFICATION', '1')
os.environ.setdefault('LOG_LEVEL', 'WARNING')

import pytest  # noqa: E402

from tests.fakes import Community, FrozenClock  # noqa: E402


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def community(clock):
    return Community(clock=clock)


@pytest.fixture
def app_db():
    """Fresh schema in the in-memory database, inside an application context."""
    from agora import app, db
    with app.app_context():
        db.create_all()
        yield db
        db.session.remove()
        db.drop_all()
