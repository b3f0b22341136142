"""
Unit tests for the in-memory user store and path id parsing.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from models import User, UserStore, parse_user_id


@pytest.mark.parametrize("raw, expected", [
    ("42", 42),
    ("  7", 7),
    ("12abc", 12),
    ("-3", -3),
    ("+4", 4),
    ("1.9", 1),
    ("0x1A", 0),
    ("abc", None),
    ("", None),
    ("\u0661", None),
])
def test_parse_user_id(raw, expected):
    assert parse_user_id(raw) == expected


class TestSeededStore:

    def test_seed_order(self):
        store = UserStore.seeded()
        assert [(u.id, u.name, u.email) for u in store.list_all()] == [
            (1, "Alice", "alice@example.com"),
            (2, "Bob", "bob@example.com"),
        ]

    def test_seeded_stores_are_independent(self):
        first = UserStore.seeded()
        second = UserStore.seeded()
        first.update(1, "Alicia", "a2@example.com")
        assert second.get(1).name == "Alice"


class TestUserStore:

    def test_get_returns_first_match(self):
        store = UserStore([User(id=1, name="a"), User(id=1, name="b")])
        assert store.get(1).name == "a"

    def test_get_none_id(self):
        assert UserStore.seeded().get(None) is None

    def test_create_appends_with_next_id(self):
        store = UserStore.seeded()
        user = store.create("Carol", "carol@example.com")
        assert user.id == 3
        assert store.list_all()[-1] is user
        assert len(store) == 3

    def test_counter_starts_past_highest_id(self):
        store = UserStore([User(id=10, name="x")])
        assert store.create("y", None).id == 11

    def test_empty_store_starts_at_one(self):
        assert UserStore().create("first", None).id == 1

    def test_ids_never_reused(self):
        store = UserStore.seeded()
        created = store.create("Carol", None)
        store.delete(created.id)
        assert store.create("Dave", None).id == created.id + 1

    def test_update_in_place(self):
        store = UserStore.seeded()
        updated = store.update(2, "Robert", None)
        assert updated.id == 2
        assert updated.email is None
        assert store.list_all()[1] is updated

    def test_update_missing(self):
        assert UserStore.seeded().update(99, "x", "y") is None

    def test_delete_counts_removed(self):
        store = UserStore([User(id=1), User(id=2), User(id=1)])
        assert store.delete(1) == 2
        assert [u.id for u in store.list_all()] == [2]
        assert store.delete(1) == 0

    def test_list_all_is_a_snapshot(self):
        store = UserStore.seeded()
        snapshot = store.list_all()
        store.delete(1)
        assert len(snapshot) == 2
        assert len(store) == 1
