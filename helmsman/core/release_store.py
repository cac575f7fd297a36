"""Append-only, hash-chained release history backed by SQLite.

Design:
- Append-only: ``append()`` is the only way to create a release; there is
  no delete. The only in-place change is the ``status`` column moving a
  previously applied release to ``superseded`` or ``rolled_back``.
- Per-key sequence: release ids count 1, 2, 3, ... independently for
  every ``(app_id, environment)`` key, with no gaps.
- Hash-chained: each release records the hash of its predecessor in the
  same key, so rewriting history is detectable.
- Id assignment happens inside a ``BEGIN IMMEDIATE`` transaction, so two
  writers (threads or processes) can never draw the same id.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from helmsman.core.errors import ChainIntegrityError, NotFoundError
from helmsman.core.hasher import compute_release_hash
from helmsman.models.releases import (
    EnvironmentKey,
    Release,
    ReleaseKind,
    ReleaseStatus,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_RELEASES = """
CREATE TABLE IF NOT EXISTS releases (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    app_id                TEXT NOT NULL,
    environment           TEXT NOT NULL,
    release_id            INTEGER NOT NULL,
    artifact_ref          TEXT NOT NULL,
    desired_state_json    TEXT NOT NULL,
    created_at            TEXT NOT NULL,
    status                TEXT NOT NULL,
    kind                  TEXT NOT NULL,
    source_release_id     INTEGER,
    run_id                TEXT NOT NULL DEFAULT '',
    previous_release_hash TEXT NOT NULL DEFAULT '',
    release_hash          TEXT NOT NULL UNIQUE,
    UNIQUE (app_id, environment, release_id)
);
"""

_CREATE_IDX_KEY = """
CREATE INDEX IF NOT EXISTS idx_release_key
    ON releases(app_id, environment, release_id);
"""

_COLUMNS = (
    "release_id, app_id, environment, artifact_ref, desired_state_json, "
    "created_at, status, kind, source_release_id, run_id, "
    "previous_release_hash, release_hash"
)


class ReleaseStore:
    """Durable record of releases per ``(app_id, environment)``.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            timeout=30.0,
            isolation_level=None,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute(_CREATE_RELEASES)
            conn.execute(_CREATE_IDX_KEY)
        finally:
            conn.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def append(
        self,
        release: Release,
        *,
        retire_as: ReleaseStatus = ReleaseStatus.SUPERSEDED,
    ) -> Release:
        """Append a release, assigning the next id in its key's sequence.

        The currently applied release for the key (if any) is moved to
        *retire_as*: ``superseded`` for ordinary deploys, ``rolled_back``
        when the new release is a rollback away from it. The new release
        is stored with status ``applied``.

        Returns the sealed release with ``release_id``,
        ``previous_release_hash`` and ``release_hash`` set.
        """
        if retire_as == ReleaseStatus.APPLIED:
            raise ValueError("retire_as must be superseded or rolled_back")

        with self._transaction() as conn:
            row = conn.execute(
                "SELECT release_id, release_hash FROM releases "
                "WHERE app_id = ? AND environment = ? "
                "ORDER BY release_id DESC LIMIT 1",
                (release.app_id, release.environment),
            ).fetchone()
            next_id = row[0] + 1 if row else 1
            previous_hash = row[1] if row else ""

            draft = release.model_copy(
                update={
                    "release_id": next_id,
                    "status": ReleaseStatus.APPLIED,
                    "previous_release_hash": previous_hash,
                    "release_hash": "",
                }
            )
            sealed = draft.model_copy(
                update={
                    "release_hash": compute_release_hash(
                        draft.model_dump(mode="json")
                    )
                }
            )

            retired = conn.execute(
                "UPDATE releases SET status = ? "
                "WHERE app_id = ? AND environment = ? AND status = ?",
                (
                    retire_as.value,
                    release.app_id,
                    release.environment,
                    ReleaseStatus.APPLIED.value,
                ),
            ).rowcount
            self._insert(conn, sealed)

        logger.info(
            "Appended release %s/%s#%d (%s, artifact=%s)%s",
            sealed.app_id,
            sealed.environment,
            sealed.release_id,
            sealed.kind.value,
            sealed.artifact_ref,
            f"; previous release marked {retire_as.value}" if retired else "",
        )
        return sealed

    @staticmethod
    def _insert(conn: sqlite3.Connection, release: Release) -> None:
        conn.execute(
            f"INSERT INTO releases ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                release.release_id,
                release.app_id,
                release.environment,
                release.artifact_ref,
                json.dumps(release.desired_state, sort_keys=True),
                release.created_at.isoformat(),
                release.status.value,
                release.kind.value,
                release.source_release_id,
                release.run_id,
                release.previous_release_hash,
                release.release_hash,
            ),
        )

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def latest(self, app_id: str, environment: str) -> Release | None:
        """Return the most recent release for the key, or ``None``."""
        with self._read() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM releases "
                "WHERE app_id = ? AND environment = ? "
                "ORDER BY release_id DESC LIMIT 1",
                (app_id, environment),
            ).fetchone()
        return self._row_to_release(row) if row else None

    def current(self, app_id: str, environment: str) -> Release | None:
        """Return the release whose status is ``applied``, or ``None``."""
        with self._read() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM releases "
                "WHERE app_id = ? AND environment = ? AND status = ?",
                (app_id, environment, ReleaseStatus.APPLIED.value),
            ).fetchone()
        return self._row_to_release(row) if row else None

    def get(self, app_id: str, environment: str, release_id: int) -> Release:
        """Return a specific release.

        Raises
        ------
        NotFoundError
            If no such release exists for the key.
        """
        with self._read() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM releases "
                "WHERE app_id = ? AND environment = ? AND release_id = ?",
                (app_id, environment, release_id),
            ).fetchone()
        if row is None:
            raise NotFoundError(
                f"Release {release_id} not found for {app_id}/{environment}"
            )
        return self._row_to_release(row)

    def history(
        self, app_id: str, environment: str, *, limit: int | None = None
    ) -> list[Release]:
        """Return releases for the key, most recent first.

        The result is a snapshot list, so it can be iterated any number
        of times.
        """
        query = (
            f"SELECT {_COLUMNS} FROM releases "
            "WHERE app_id = ? AND environment = ? "
            "ORDER BY release_id DESC"
        )
        params: tuple = (app_id, environment)
        if limit is not None:
            query += " LIMIT ?"
            params = (*params, limit)
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_release(row) for row in rows]

    def list_environments(self) -> list[EnvironmentKey]:
        """Return every key that has at least one release."""
        with self._read() as conn:
            rows = conn.execute(
                "SELECT DISTINCT app_id, environment FROM releases "
                "ORDER BY app_id, environment"
            ).fetchall()
        return [EnvironmentKey(app_id=a, environment=e) for a, e in rows]

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self, app_id: str, environment: str) -> bool:
        """Verify sequence and hash-chain integrity for a key.

        Walks releases oldest first, checking that ids are contiguous from
        1, that each ``previous_release_hash`` links to its predecessor,
        that each ``release_hash`` matches a recomputation, and that at
        most one release is ``applied``.

        Returns True if the chain is valid, raises ChainIntegrityError otherwise.
        """
        releases = list(reversed(self.history(app_id, environment)))
        prev_hash = ""
        applied = 0
        for expected_id, release in enumerate(releases, start=1):
            if release.release_id != expected_id:
                raise ChainIntegrityError(
                    f"Gap in release sequence for {app_id}/{environment}: "
                    f"expected #{expected_id}, found #{release.release_id}"
                )
            if release.previous_release_hash != prev_hash:
                raise ChainIntegrityError(
                    f"Chain broken at release #{release.release_id}: "
                    f"expected previous_hash={prev_hash!r}, "
                    f"got {release.previous_release_hash!r}"
                )
            expected_hash = compute_release_hash(release.model_dump(mode="json"))
            if release.release_hash != expected_hash:
                raise ChainIntegrityError(
                    f"Tampered release #{release.release_id}: "
                    f"expected hash={expected_hash!r}, "
                    f"got {release.release_hash!r}"
                )
            if release.is_current:
                applied += 1
            prev_hash = release.release_hash

        if applied > 1:
            raise ChainIntegrityError(
                f"{applied} releases are marked applied for {app_id}/{environment}"
            )
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_release(row: tuple) -> Release:
        """Convert a SQLite row tuple to a Release."""
        (
            release_id,
            app_id,
            environment,
            artifact_ref,
            desired_state_json,
            created_at,
            status,
            kind,
            source_release_id,
            run_id,
            previous_release_hash,
            release_hash,
        ) = row
        return Release(
            release_id=release_id,
            app_id=app_id,
            environment=environment,
            artifact_ref=artifact_ref,
            desired_state=json.loads(desired_state_json),
            created_at=datetime.fromisoformat(created_at),
            status=ReleaseStatus(status),
            kind=ReleaseKind(kind),
            source_release_id=source_release_id,
            run_id=run_id,
            previous_release_hash=previous_release_hash,
            release_hash=release_hash,
        )
