"""Durable storage for session credential fragments.

Fragments are named opaque blobs (file name -> content) that make up an
authenticated chat session. The durable copy lives in PostgreSQL, encrypted
at rest; a plain local cache directory mirrors it for the transport.

Security:
- Fragment contents are never logged, only names count and session hash.
"""

from __future__ import annotations

import shutil
import tempfile
import threading
from pathlib import Path

import psycopg2
from cryptography.exceptions import InvalidTag

from offerbridge.infra import crypto
from offerbridge.infra.db import fetchall, txn
from offerbridge.infra.hashing import hash_identifier
from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context

logger = get_logger(__name__)


class StoreUnavailable(Exception):
    """Raised when the durable store cannot be reached."""

    pass


class ConcurrentClearConflict(Exception):
    """Raised when a clear or persist finds another one in flight."""

    pass


def _write_fragments(directory: Path, fragments: dict[str, str]) -> None:
    for name, content in fragments.items():
        # Fragment names come from the transport; keep them inside the directory
        target = directory / Path(name).name
        target.write_text(content, encoding="utf-8")


class CredentialStore:
    """Restore, persist and clear session credential fragments.

    `persist` and `clear` share one in-flight lock. Neither waits for the
    other: the one that finds the lock held raises ConcurrentClearConflict.
    """

    def __init__(self, cache_dir: Path, encryption_key: bytes) -> None:
        self._cache_dir = Path(cache_dir)
        self._key = encryption_key
        self._in_flight = threading.Lock()

    def cache_path(self, session_key: str) -> Path:
        return self._cache_dir / session_key

    def restore(self, session_key: str) -> dict[str, str]:
        """Load all persisted fragments and write them to the local cache.

        The cache directory is replaced as a whole, so the transport never sees
        a partially restored set.

        Returns:
            Fragments by name; empty when nothing was persisted.

        Raises:
            StoreUnavailable: If the database cannot be reached.
        """
        try:
            with txn() as cur:
                rows = fetchall(
                    cur,
                    """
                    SELECT file_name, content
                    FROM session_fragments
                    WHERE session_key = %s
                    ORDER BY file_name
                    """,
                    (session_key,),
                )
        except (psycopg2.Error, RuntimeError) as e:
            raise StoreUnavailable(str(e)) from e

        try:
            fragments = {name: crypto.decrypt(self._key, content) for name, content in rows}
        except (InvalidTag, ValueError) as e:
            raise StoreUnavailable("persisted fragments cannot be decrypted") from e

        self._cache_dir.mkdir(parents=True, exist_ok=True)
        if fragments:
            target = self.cache_path(session_key)
            staging = Path(tempfile.mkdtemp(prefix=f".{session_key}.", dir=self._cache_dir))
            try:
                _write_fragments(staging, fragments)
                if target.exists():
                    shutil.rmtree(target)
                staging.replace(target)
            finally:
                if staging.exists():
                    shutil.rmtree(staging, ignore_errors=True)

        logger.info(
            "session fragments restored",
            extra={
                "extra_fields": safe_log_context(
                    session_hash=hash_identifier(session_key),
                    fragment_count=len(fragments),
                )
            },
        )
        return fragments

    def snapshot(self, session_key: str) -> dict[str, str]:
        """Read the fragments currently in the local cache directory."""
        directory = self.cache_path(session_key)
        if not directory.is_dir():
            return {}
        return {
            path.name: path.read_text(encoding="utf-8")
            for path in sorted(directory.iterdir())
            if path.is_file()
        }

    def persist(self, session_key: str, fragments: dict[str, str]) -> None:
        """Write fragments to the local cache, then upsert them in the database.

        Raises:
            ConcurrentClearConflict: If a clear is in flight.
            StoreUnavailable: If the database cannot be reached.
        """
        if not self._in_flight.acquire(blocking=False):
            raise ConcurrentClearConflict("session clear in progress")
        try:
            directory = self.cache_path(session_key)
            directory.mkdir(parents=True, exist_ok=True)
            _write_fragments(directory, fragments)

            if not fragments:
                return

            try:
                with txn() as cur:
                    for name, content in fragments.items():
                        cur.execute(
                            """
                            INSERT INTO session_fragments
                                (session_key, file_name, content, updated_at)
                            VALUES (%s, %s, %s, now())
                            ON CONFLICT (session_key, file_name)
                            DO UPDATE SET content = EXCLUDED.content, updated_at = now()
                            """,
                            (session_key, Path(name).name, crypto.encrypt(self._key, content)),
                        )
            except (psycopg2.Error, RuntimeError) as e:
                raise StoreUnavailable(str(e)) from e
        finally:
            self._in_flight.release()

        logger.info(
            "session fragments persisted",
            extra={
                "extra_fields": safe_log_context(
                    session_hash=hash_identifier(session_key),
                    fragment_count=len(fragments),
                )
            },
        )

    def clear(self, session_key: str) -> None:
        """Delete all fragments for the session and remove the local cache.

        Raises:
            ConcurrentClearConflict: If another clear or a persist is in flight.
            StoreUnavailable: If the database cannot be reached.
        """
        if not self._in_flight.acquire(blocking=False):
            raise ConcurrentClearConflict("session clear already in progress")
        try:
            try:
                with txn() as cur:
                    cur.execute(
                        "DELETE FROM session_fragments WHERE session_key = %s",
                        (session_key,),
                    )
            except (psycopg2.Error, RuntimeError) as e:
                raise StoreUnavailable(str(e)) from e

            shutil.rmtree(self.cache_path(session_key), ignore_errors=True)
        finally:
            self._in_flight.release()

        logger.info(
            "session fragments cleared",
            extra={"extra_fields": safe_log_context(session_hash=hash_identifier(session_key))},
        )
