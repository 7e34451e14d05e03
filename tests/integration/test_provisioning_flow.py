"""End-to-end provisioning against a file-backed SQLite database."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from authz.engine import AuthManager
from authz.errors import DuplicateNameError
from authz.migration import RbacMigration
from authz.models import DatabaseManager
from authz.rules import RuleRegistry


@pytest.fixture
def file_db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'rbac.db'}")
    yield manager
    manager.dispose()


def is_author(identity, item, params):
    post = params.get("post")
    return post is not None and post["created_by"] == identity


def provision(migration):
    """Typical blog setup, written the way a provisioning script would be."""
    migration.init_rbac_structure()
    migration.add_rule("isAuthor", is_author)

    migration.create_permission("createPost", "Create a post")
    migration.create_permission("updatePost", "Update post")
    migration.create_permission("updateOwnPost", "Update own post", "isAuthor")
    migration.add_child("updateOwnPost", "updatePost")

    migration.create_role("author")
    migration.add_child("author", "createPost")
    migration.add_child("author", "updateOwnPost")

    migration.create_role("admin")
    migration.add_child("admin", "updatePost")
    migration.add_child("admin", "author")

    migration.assign(2, "author")
    migration.assign(1, "admin")


def test_blog_provisioning(file_db):
    manager = AuthManager(file_db, rules=RuleRegistry())
    provision(RbacMigration(manager))

    own_post = {"post": {"created_by": "2"}}
    other_post = {"post": {"created_by": "3"}}

    assert manager.check(2, "createPost")
    assert manager.check(2, "updatePost", own_post)
    assert not manager.check(2, "updatePost", other_post)
    assert manager.check(1, "updatePost", other_post)
    assert not manager.check(3, "createPost")


def test_state_survives_new_manager(file_db, tmp_path):
    provision(RbacMigration(AuthManager(file_db, rules=RuleRegistry())))

    reopened = DatabaseManager(f"sqlite:///{tmp_path / 'rbac.db'}")
    try:
        rules = RuleRegistry({"isAuthor": is_author})
        manager = AuthManager(reopened, rules=rules)

        assert {i.name for i in manager.children("admin")} == {"author", "updatePost"}
        assert manager.check(2, "updatePost", {"post": {"created_by": "2"}})
    finally:
        reopened.dispose()


def test_rerun_fails_on_duplicate_and_keeps_state(file_db):
    manager = AuthManager(file_db, rules=RuleRegistry())
    migration = RbacMigration(manager)
    provision(migration)

    with pytest.raises(DuplicateNameError):
        provision(migration)

    assert len(manager.list_items()) == 5


def test_rename_and_rollback_of_schema(file_db):
    manager = AuthManager(file_db, rules=RuleRegistry())
    migration = RbacMigration(manager)
    provision(migration)

    migration.update_role("author", "writer", description="Writes posts")
    assert manager.check(2, "createPost")
    assert {i.name for i in manager.assigned_items(2)} == {"writer"}

    migration.rollback_rbac_structure()
    migration.init_rbac_structure()
    assert manager.list_items() == []


def test_concurrent_checks(file_db):
    manager = AuthManager(file_db, rules=RuleRegistry())
    provision(RbacMigration(manager))

    def run(identity):
        return manager.check(identity, "createPost")

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(run, [1, 2, 3] * 10))

    assert results == [True, True, False] * 10
