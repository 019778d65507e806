"""Tests for CredentialStore. Database access is patched; no real DB needed."""

import threading
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from offerbridge.infra import crypto
from offerbridge.session.credential_store import (
    ConcurrentClearConflict,
    CredentialStore,
    StoreUnavailable,
)

KEY = bytes(range(32))
SESSION = "default"


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def fake_txn(cursor):
    @contextmanager
    def _txn():
        yield cursor

    with patch("offerbridge.session.credential_store.txn", _txn):
        yield cursor


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "auth", KEY)


def _encrypted_rows(fragments):
    return [(name, crypto.encrypt(KEY, content)) for name, content in sorted(fragments.items())]


class TestRestore:
    def test_restores_and_writes_cache(self, store, fake_txn):
        rows = _encrypted_rows({"creds.json": '{"me": 1}', "pre-key-1.json": "{}"})
        with patch("offerbridge.session.credential_store.fetchall", return_value=rows):
            fragments = store.restore(SESSION)

        assert fragments == {"creds.json": '{"me": 1}', "pre-key-1.json": "{}"}
        assert (store.cache_path(SESSION) / "creds.json").read_text() == '{"me": 1}'

    def test_restore_replaces_stale_cache(self, store, fake_txn):
        stale_dir = store.cache_path(SESSION)
        stale_dir.mkdir(parents=True)
        (stale_dir / "old.json").write_text("stale")

        rows = _encrypted_rows({"creds.json": "{}"})
        with patch("offerbridge.session.credential_store.fetchall", return_value=rows):
            store.restore(SESSION)

        assert store.snapshot(SESSION) == {"creds.json": "{}"}

    def test_empty_store_returns_empty(self, store, fake_txn):
        with patch("offerbridge.session.credential_store.fetchall", return_value=[]):
            assert store.restore(SESSION) == {}

    def test_database_error_raises_store_unavailable(self, store):
        with patch(
            "offerbridge.session.credential_store.txn",
            side_effect=psycopg2.OperationalError("could not connect"),
        ):
            with pytest.raises(StoreUnavailable):
                store.restore(SESSION)

    def test_missing_database_url_raises_store_unavailable(self, store):
        with patch(
            "offerbridge.session.credential_store.txn",
            side_effect=RuntimeError("DATABASE_URL environment variable not set"),
        ):
            with pytest.raises(StoreUnavailable):
                store.restore(SESSION)

    def test_undecryptable_rows_raise_store_unavailable(self, tmp_path, fake_txn):
        other = CredentialStore(tmp_path / "auth", bytes(32))
        rows = _encrypted_rows({"creds.json": "{}"})
        with patch("offerbridge.session.credential_store.fetchall", return_value=rows):
            with pytest.raises(StoreUnavailable, match="decrypted"):
                other.restore(SESSION)


class TestPersist:
    def test_writes_cache_and_upserts_encrypted(self, store, fake_txn):
        store.persist(SESSION, {"creds.json": "plain"})

        assert store.snapshot(SESSION) == {"creds.json": "plain"}
        sql, params = fake_txn.execute.call_args[0]
        assert "ON CONFLICT (session_key, file_name)" in sql
        assert params[0] == SESSION
        assert params[1] == "creds.json"
        assert params[2] != "plain"
        assert crypto.decrypt(KEY, params[2]) == "plain"

    def test_fragment_names_stay_inside_cache(self, store, fake_txn):
        store.persist(SESSION, {"../escape.json": "x"})

        assert store.snapshot(SESSION) == {"escape.json": "x"}
        assert fake_txn.execute.call_args[0][1][1] == "escape.json"

    def test_empty_fragments_skip_database(self, store, fake_txn):
        store.persist(SESSION, {})

        fake_txn.execute.assert_not_called()

    def test_database_error_raises_store_unavailable(self, store):
        with patch(
            "offerbridge.session.credential_store.txn",
            side_effect=psycopg2.OperationalError("down"),
        ):
            with pytest.raises(StoreUnavailable):
                store.persist(SESSION, {"creds.json": "{}"})

    def test_rejected_while_clear_in_flight(self, store, fake_txn):
        store._in_flight.acquire()
        try:
            with pytest.raises(ConcurrentClearConflict):
                store.persist(SESSION, {"creds.json": "{}"})
        finally:
            store._in_flight.release()

        fake_txn.execute.assert_not_called()


class TestClear:
    def test_deletes_rows_and_cache(self, store, fake_txn):
        store.persist(SESSION, {"creds.json": "{}"})

        store.clear(SESSION)

        sql, params = fake_txn.execute.call_args[0]
        assert sql.startswith("DELETE FROM session_fragments")
        assert params == (SESSION,)
        assert not store.cache_path(SESSION).exists()
        assert store.snapshot(SESSION) == {}

    def test_second_concurrent_clear_conflicts(self, store, cursor):
        entered = threading.Event()
        release = threading.Event()
        errors = []

        @contextmanager
        def _slow_txn():
            entered.set()
            release.wait(timeout=5)
            yield cursor

        def _first():
            store.clear(SESSION)

        with patch("offerbridge.session.credential_store.txn", _slow_txn):
            worker = threading.Thread(target=_first)
            worker.start()
            assert entered.wait(timeout=5)
            try:
                store.clear(SESSION)
            except ConcurrentClearConflict as e:
                errors.append(e)
            finally:
                release.set()
                worker.join(timeout=5)

        assert len(errors) == 1
        cursor.execute.assert_called_once()

    def test_lock_released_after_failure(self, store, fake_txn):
        with patch(
            "offerbridge.session.credential_store.txn",
            side_effect=psycopg2.OperationalError("down"),
        ):
            with pytest.raises(StoreUnavailable):
                store.clear(SESSION)

        store.clear(SESSION)
        fake_txn.execute.assert_called_once()


def test_snapshot_of_missing_session_is_empty(store):
    assert store.snapshot("nope") == {}
