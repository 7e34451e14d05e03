"""Unit tests for authz.hierarchy.HierarchyGraph."""

import pytest

from authz.errors import (
    CycleError,
    DuplicateEdgeError,
    InvalidHierarchyError,
    NotFoundError,
)
from authz.hierarchy import HierarchyGraph
from authz.items import ItemStore


@pytest.fixture
def graph(db_session):
    items = ItemStore(db_session)
    for name in ("admin", "author", "reader"):
        items.create_role(name)
    for name in ("createPost", "updatePost", "readPost"):
        items.create_permission(name)
    return HierarchyGraph(db_session, items)


class TestAddEdge:
    def test_role_to_permission(self, graph):
        graph.add_edge("author", "createPost")

        assert graph.has_child("author", "createPost")
        assert {i.name for i in graph.children("author")} == {"createPost"}
        assert {i.name for i in graph.parents("createPost")} == {"author"}

    def test_role_to_role_and_permission_to_permission(self, graph):
        graph.add_edge("admin", "author")
        graph.add_edge("updatePost", "readPost")

        assert graph.child_names("admin") == ["author"]
        assert graph.child_names("updatePost") == ["readPost"]

    def test_accepts_items(self, graph):
        author = graph.items.get("author")
        create_post = graph.items.get("createPost")

        graph.add_edge(author, create_post)

        assert graph.has_child("author", "createPost")

    def test_permission_cannot_own_role(self, graph):
        with pytest.raises(InvalidHierarchyError):
            graph.add_edge("createPost", "author")

    def test_permission_cannot_own_role_even_when_reverse_exists(self, graph):
        graph.add_edge("author", "createPost")
        with pytest.raises(InvalidHierarchyError):
            graph.add_edge("createPost", "author")

    def test_duplicate_edge(self, graph):
        graph.add_edge("author", "createPost")
        with pytest.raises(DuplicateEdgeError):
            graph.add_edge("author", "createPost")

    def test_self_loop(self, graph):
        with pytest.raises(CycleError):
            graph.add_edge("author", "author")

    def test_direct_reverse_is_cycle(self, graph):
        graph.add_edge("admin", "author")
        with pytest.raises(CycleError):
            graph.add_edge("author", "admin")

    def test_transitive_cycle(self, graph):
        graph.add_edge("admin", "author")
        graph.add_edge("author", "reader")
        with pytest.raises(CycleError):
            graph.add_edge("reader", "admin")

    def test_unknown_items(self, graph):
        with pytest.raises(NotFoundError):
            graph.add_edge("author", "deletePost")
        with pytest.raises(NotFoundError):
            graph.add_edge("editor", "createPost")

    def test_diamond_is_allowed(self, graph):
        graph.add_edge("admin", "author")
        graph.add_edge("admin", "reader")
        graph.add_edge("author", "readPost")
        graph.add_edge("reader", "readPost")

        assert graph.descendants("admin") == {"author", "reader", "readPost"}

    def test_can_add_edge(self, graph):
        graph.add_edge("admin", "author")

        assert graph.can_add_edge("author", "createPost")
        assert not graph.can_add_edge("author", "admin")
        assert not graph.can_add_edge("admin", "author")
        assert not graph.can_add_edge("createPost", "reader")


class TestAcyclicity:
    def test_successful_edges_never_form_cycle(self, graph):
        names = ["admin", "author", "reader", "createPost", "updatePost", "readPost"]
        added = []
        for parent in names:
            for child in names:
                try:
                    graph.add_edge(parent, child)
                    added.append((parent, child))
                except (CycleError, InvalidHierarchyError, DuplicateEdgeError):
                    pass

        assert added
        for name in names:
            assert name not in graph.descendants(name)


class TestRemoveEdge:
    def test_remove_existing(self, graph):
        graph.add_edge("author", "createPost")

        assert graph.remove_edge("author", "createPost") is True
        assert not graph.has_child("author", "createPost")

    def test_remove_is_idempotent(self, graph):
        graph.add_edge("author", "createPost")
        graph.add_edge("author", "readPost")

        graph.remove_edge("author", "createPost")
        assert graph.remove_edge("author", "createPost") is False
        assert graph.child_names("author") == ["readPost"]

    def test_remove_unknown_items_is_noop(self, graph):
        assert graph.remove_edge("ghost", "phantom") is False

    def test_remove_children(self, graph):
        graph.add_edge("author", "createPost")
        graph.add_edge("author", "readPost")
        graph.add_edge("admin", "author")

        assert graph.remove_children("author") == 2
        assert graph.child_names("author") == []
        assert graph.child_names("admin") == ["author"]
