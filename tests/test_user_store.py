"""Unit tests for auth/store.py -- UserStore queries.

Covers:
- create_user() assigns ids and timestamps; lookups by email and id
- The UNIQUE email backstop raises IntegrityError
- update_refresh_token() sets and clears the session columns
- rotate_refresh_token() only succeeds while the old token is still stored
- update_profile() whitelists columns and stamps updated_at
- set_active() and ping()
"""

from datetime import datetime, timedelta, timezone

import threading
import uuid

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import SingletonThreadPool

from auth.store import UserStore

EXPIRES = datetime(2026, 1, 8, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def alice(store: UserStore):
    return store.create_user("alice", "alice@x.com", "$2b$10$fakehashfakehashfakehash")


class TestUserQueries:
    def test_create_user_assigns_id_and_timestamps(self, alice):
        assert isinstance(alice.id, int)
        assert alice.username == "alice"
        assert alice.is_active is True
        assert alice.created_at is not None
        assert alice.created_at == alice.updated_at
        assert alice.refresh_token is None

    def test_get_by_email_returns_stored_row(self, store, alice):
        found = store.get_by_email("alice@x.com")
        assert found is not None
        assert found.id == alice.id
        assert found.password_hash == alice.password_hash

    def test_get_by_id_returns_stored_row(self, store, alice):
        assert store.get_by_id(alice.id).email == "alice@x.com"

    def test_unknown_lookups_return_none(self, store):
        assert store.get_by_email("nobody@x.com") is None
        assert store.get_by_id(9999) is None

    def test_email_lookup_is_exact(self, store, alice):
        assert store.get_by_email("ALICE@x.com") is None

    def test_ids_are_distinct(self, store, alice):
        bob = store.create_user("bob", "bob@x.com", "hash")
        assert bob.id != alice.id

    def test_duplicate_email_raises_integrity_error(self, store, alice):
        with pytest.raises(IntegrityError):
            store.create_user("alice2", "alice@x.com", "hash")

    def test_quotes_in_values_are_bound_not_interpolated(self, store):
        """Bound parameters: a quote in the email is data, not SQL."""
        user = store.create_user("o'brien", "o'brien@x.com", "hash")
        assert store.get_by_email("o'brien@x.com").id == user.id
        assert store.get_by_email("' OR '1'='1") is None

    def test_ping(self, store):
        assert store.ping() is True


class TestRefreshTokenColumns:
    def test_update_refresh_token_sets_session(self, store, alice):
        store.update_refresh_token(alice.id, "token-1", EXPIRES)
        row = store.get_by_id(alice.id)
        assert row.refresh_token == "token-1"
        assert datetime.fromisoformat(row.token_expires_at) == EXPIRES

    def test_update_refresh_token_none_clears_session(self, store, alice):
        store.update_refresh_token(alice.id, "token-1", EXPIRES)
        store.update_refresh_token(alice.id, None, None)
        row = store.get_by_id(alice.id)
        assert row.refresh_token is None
        assert row.token_expires_at is None

    def test_update_refresh_token_overwrites(self, store, alice):
        store.update_refresh_token(alice.id, "token-1", EXPIRES)
        store.update_refresh_token(alice.id, "token-2", EXPIRES)
        assert store.get_by_id(alice.id).refresh_token == "token-2"

    def test_rotate_succeeds_when_old_token_matches(self, store, alice):
        store.update_refresh_token(alice.id, "token-1", EXPIRES)
        later = EXPIRES + timedelta(days=1)
        assert store.rotate_refresh_token(alice.id, "token-1", "token-2", later) is True
        row = store.get_by_id(alice.id)
        assert row.refresh_token == "token-2"
        assert datetime.fromisoformat(row.token_expires_at) == later

    def test_second_rotation_with_same_old_token_fails(self, store, alice):
        """Two refreshes racing on token-1: only the first UPDATE still matches."""
        store.update_refresh_token(alice.id, "token-1", EXPIRES)
        assert store.rotate_refresh_token(alice.id, "token-1", "token-2", EXPIRES) is True
        assert store.rotate_refresh_token(alice.id, "token-1", "token-3", EXPIRES) is False
        assert store.get_by_id(alice.id).refresh_token == "token-2"

    def test_rotate_fails_after_clear(self, store, alice):
        store.update_refresh_token(alice.id, "token-1", EXPIRES)
        store.update_refresh_token(alice.id, None, None)
        assert store.rotate_refresh_token(alice.id, "token-1", "token-2", EXPIRES) is False

    def test_rotate_fails_for_other_user(self, store, alice):
        bob = store.create_user("bob", "bob@x.com", "hash")
        store.update_refresh_token(alice.id, "token-1", EXPIRES)
        assert store.rotate_refresh_token(bob.id, "token-1", "token-2", EXPIRES) is False


class TestProfileAndActivation:
    def test_update_profile_changes_fields(self, store, alice):
        assert store.update_profile(alice.id, username="alicia", email="alicia@x.com") is True
        row = store.get_by_id(alice.id)
        assert (row.username, row.email) == ("alicia", "alicia@x.com")
        assert row.updated_at >= row.created_at

    def test_update_profile_unknown_user_returns_false(self, store):
        assert store.update_profile(9999, username="ghost") is False

    def test_update_profile_rejects_unknown_columns(self, store, alice):
        with pytest.raises(ValueError):
            store.update_profile(alice.id, password_hash="x")

    def test_update_profile_requires_a_field(self, store, alice):
        with pytest.raises(ValueError):
            store.update_profile(alice.id)

    def test_set_active_toggles(self, store, alice):
        assert store.set_active(alice.id, False) is True
        assert store.get_by_id(alice.id).is_active is False
        assert store.set_active(alice.id, True) is True
        assert store.get_by_id(alice.id).is_active is True

    def test_set_active_unknown_user(self, store):
        assert store.set_active(9999, False) is False


class TestEngineSetup:
    def test_memory_url_uses_singleton_thread_pool(self, store):
        assert isinstance(store.engine.pool, SingletonThreadPool)

    def test_shared_memory_url_is_visible_from_other_threads(self):
        shared = UserStore(f"sqlite:///file:store_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
        try:
            assert isinstance(shared.engine.pool, SingletonThreadPool)
            user = shared.create_user("alice", "alice@x.com", "hash")
            seen = []
            worker = threading.Thread(target=lambda: seen.append(shared.get_by_email("alice@x.com")))
            worker.start()
            worker.join()
            assert seen[0] is not None
            assert seen[0].id == user.id
        finally:
            shared.close()

    def test_file_url_keeps_default_pool(self, tmp_path):
        on_disk = UserStore(f"sqlite:///{tmp_path / 'users.db'}")
        try:
            assert not isinstance(on_disk.engine.pool, SingletonThreadPool)
        finally:
            on_disk.close()
