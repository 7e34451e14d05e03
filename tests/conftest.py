# tests/conftest.py
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from authz.engine import AuthManager  # noqa: E402
from authz.models import DatabaseManager  # noqa: E402
from authz.rules import RuleRegistry  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def db_manager():
    """Create temporary in-memory database for testing."""
    manager = DatabaseManager("sqlite:///:memory:")
    manager.create_tables()
    yield manager
    manager.drop_tables()
    manager.dispose()


@pytest.fixture
def db_session(db_manager):
    """Session that is rolled back after the test."""
    session = db_manager.SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def rules():
    return RuleRegistry()


@pytest.fixture
def auth_manager(db_manager, rules):
    return AuthManager(db_manager, rules=rules)


@pytest.fixture
def blog(auth_manager):
    """Small blog hierarchy: admin > author > createPost, admin > updatePost."""
    auth_manager.create_permission("createPost", "Create a post")
    auth_manager.create_permission("updatePost", "Update any post")
    auth_manager.create_role("author")
    auth_manager.create_role("admin")
    auth_manager.add_child("author", "createPost")
    auth_manager.add_child("admin", "author")
    auth_manager.add_child("admin", "updatePost")
    return auth_manager
