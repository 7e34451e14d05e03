import pytest

import main
from authz.models import DatabaseManager, dispose_db_manager


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'authz.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    dispose_db_manager()
    yield url
    dispose_db_manager()


def test_usage_without_command():
    with pytest.raises(SystemExit) as exc:
        main.main([])
    assert exc.value.code == 1


def test_check_needs_arguments(database_url):
    with pytest.raises(SystemExit) as exc:
        main.main(["check", "alice"])
    assert exc.value.code == 1


def test_missing_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    dispose_db_manager()

    with pytest.raises(SystemExit) as exc:
        main.main(["init"])
    assert exc.value.code == 1


def test_init_then_check(database_url):
    main.main(["init"])

    from authz.engine import AuthManager

    manager = AuthManager.from_settings()
    manager.create_role("author")
    manager.create_permission("createPost")
    manager.add_child("author", "createPost")
    manager.assign("alice", "author")

    main.main(["check", "alice", "createPost"])

    with pytest.raises(SystemExit) as exc:
        main.main(["check", "bob", "createPost"])
    assert exc.value.code == 2


def test_drop(database_url):
    main.main(["init"])
    main.main(["drop"])


@pytest.fixture
def create_calls(monkeypatch):
    calls = []
    original = DatabaseManager.create_tables

    def counting(self):
        calls.append(self)
        original(self)

    monkeypatch.setattr(DatabaseManager, "create_tables", counting)
    return calls


def test_init_creates_tables_once(database_url, create_calls):
    main.main(["init"])

    assert len(create_calls) == 1


def test_drop_does_not_create_tables(database_url, create_calls):
    main.main(["drop"])

    assert create_calls == []


def test_check_before_init(database_url):
    with pytest.raises(SystemExit) as exc:
        main.main(["check", "alice", "createPost"])
    assert exc.value.code == 1
