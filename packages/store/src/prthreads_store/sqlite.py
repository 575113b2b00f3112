"""SQLiteStore: local file-based store for single-host deployments.

The connection runs in autocommit mode so that each single-statement write
(counter increment, thread compare-and-set) is atomic on its own, and the
status read-check-write runs inside an explicit ``BEGIN IMMEDIATE``
transaction which also excludes other processes sharing the file.

Schema:
  reviews : one row per pull request, metadata columns + state columns.
  threads : one row per thread; positions stored as JSON objects.
  comments: one row per comment.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import asdict
from typing import TYPE_CHECKING, Callable

from prthreads_core.errors import ReviewNotFound, StaleThreadWrite
from prthreads_core.models import (
    Comment,
    Ref,
    Review,
    ReviewMetadata,
    ReviewState,
    ReviewStatus,
    Thread,
    ThreadArgs,
)
from prthreads_store.base import BaseStore

if TYPE_CHECKING:
    from prthreads_core.models import ReviewKey

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    owner           TEXT NOT NULL,
    repo            TEXT NOT NULL,
    number          INTEGER NOT NULL,
    author          TEXT,
    title           TEXT,
    base_label      TEXT,
    base_sha        TEXT,
    head_label      TEXT,
    head_sha        TEXT,
    updated_at      INTEGER DEFAULT 0,
    status          TEXT NOT NULL,
    closed          INTEGER DEFAULT 0,
    reviewers_json  TEXT DEFAULT '[]',
    approvers_json  TEXT DEFAULT '[]',
    unresolved      INTEGER DEFAULT 0,
    last_comment    INTEGER DEFAULT 0,
    PRIMARY KEY (owner, repo, number)
);
CREATE TABLE IF NOT EXISTS threads (
    id                TEXT PRIMARY KEY,
    owner             TEXT NOT NULL,
    repo              TEXT NOT NULL,
    number            INTEGER NOT NULL,
    username          TEXT,
    draft             INTEGER DEFAULT 1,
    resolved          INTEGER DEFAULT 0,
    pending_resolved  INTEGER,
    original_json     TEXT NOT NULL,
    current_json      TEXT NOT NULL,
    version           INTEGER DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_threads_review ON threads (owner, repo, number);
CREATE TABLE IF NOT EXISTS comments (
    id         TEXT PRIMARY KEY,
    owner      TEXT NOT NULL,
    repo       TEXT NOT NULL,
    number     INTEGER NOT NULL,
    thread_id  TEXT NOT NULL,
    username   TEXT,
    text       TEXT,
    timestamp  INTEGER DEFAULT 0,
    draft      INTEGER DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_comments_review ON comments (owner, repo, number);
"""

_REVIEW_WHERE = "owner=? AND repo=? AND number=?"


class SQLiteStore(BaseStore):
    """Stores reviews, threads and comments in a local SQLite database file.

    The database file path defaults to `.prthreads.db` in the current working
    directory. Configure via .prthreads.yml: `store_path: /path/to/prthreads.db`.
    """

    def __init__(self, db_path: str = ".prthreads.db"):
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)

    # ------------------------------------------------------------------ #
    # Reviews                                                              #
    # ------------------------------------------------------------------ #

    def save_review(self, review: Review) -> None:
        m, s = review.metadata, review.state
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO reviews
                  (owner, repo, number, author, title, base_label, base_sha, head_label, head_sha,
                   updated_at, status, closed, reviewers_json, approvers_json, unresolved, last_comment)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    m.owner,
                    m.repo,
                    m.number,
                    m.author,
                    m.title,
                    m.base.label,
                    m.base.sha,
                    m.head.label,
                    m.head.sha,
                    m.updated_at,
                    s.status.value,
                    int(s.closed),
                    json.dumps(list(s.reviewers)),
                    json.dumps(list(s.approvers)),
                    s.unresolved,
                    s.last_comment,
                ),
            )

    def get_review(self, key: ReviewKey) -> Review | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT * FROM reviews WHERE {_REVIEW_WHERE}", (key.owner, key.repo, key.number)
            ).fetchone()
        return self._row_to_review(row) if row else None

    def list_reviews(
        self, owner: str, repo: str, base_label: str | None = None, open_only: bool = False
    ) -> list[Review]:
        query = "SELECT * FROM reviews WHERE owner=? AND repo=?"
        params: list = [owner, repo]
        if base_label is not None:
            query += " AND base_label=?"
            params.append(base_label)
        if open_only:
            query += " AND closed=0"
        with self._lock:
            rows = self._conn.execute(query + " ORDER BY number", params).fetchall()
        return [self._row_to_review(r) for r in rows]

    def update_metadata(self, metadata: ReviewMetadata) -> bool:
        key = metadata.key
        with self._lock:
            cur = self._conn.execute(
                f"""
                UPDATE reviews SET author=?, title=?, base_label=?, base_sha=?, head_label=?, head_sha=?,
                                   updated_at=?
                WHERE {_REVIEW_WHERE} AND updated_at <= ?
                """,
                (
                    metadata.author,
                    metadata.title,
                    metadata.base.label,
                    metadata.base.sha,
                    metadata.head.label,
                    metadata.head.sha,
                    metadata.updated_at,
                    key.owner,
                    key.repo,
                    key.number,
                    metadata.updated_at,
                ),
            )
            if cur.rowcount:
                return True
            if self.get_review(key) is None:
                raise ReviewNotFound(key)
            return False

    def update_state(
        self, key: ReviewKey, fn: Callable[[ReviewState], ReviewState]
    ) -> tuple[ReviewState, ReviewState]:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    f"SELECT * FROM reviews WHERE {_REVIEW_WHERE}", (key.owner, key.repo, key.number)
                ).fetchone()
                if row is None:
                    raise ReviewNotFound(key)
                before = self._row_to_review(row).state
                after = fn(before)
                self._conn.execute(
                    f"""
                    UPDATE reviews SET status=?, closed=?, reviewers_json=?, approvers_json=?,
                                       unresolved=?, last_comment=?
                    WHERE {_REVIEW_WHERE}
                    """,
                    (
                        after.status.value,
                        int(after.closed),
                        json.dumps(list(after.reviewers)),
                        json.dumps(list(after.approvers)),
                        after.unresolved,
                        after.last_comment,
                        key.owner,
                        key.repo,
                        key.number,
                    ),
                )
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return before, after

    def increment_unresolved(self, key: ReviewKey, delta: int) -> None:
        with self._lock:
            cur = self._conn.execute(
                f"UPDATE reviews SET unresolved = unresolved + ? WHERE {_REVIEW_WHERE}",
                (delta, key.owner, key.repo, key.number),
            )
        if not cur.rowcount:
            raise ReviewNotFound(key)

    # ------------------------------------------------------------------ #
    # Threads                                                              #
    # ------------------------------------------------------------------ #

    def create_thread(self, key: ReviewKey, thread: Thread) -> Thread:
        if self.get_review(key) is None:
            raise ReviewNotFound(key)
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO threads
                  (id, owner, repo, number, username, draft, resolved, pending_resolved,
                   original_json, current_json, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    thread.id,
                    key.owner,
                    key.repo,
                    key.number,
                    thread.username,
                    int(thread.draft),
                    int(thread.resolved),
                    None if thread.pending_resolved is None else int(thread.pending_resolved),
                    json.dumps(asdict(thread.original_args)),
                    json.dumps(asdict(thread.current_args)),
                    thread.version,
                ),
            )
        return thread

    def get_thread(self, key: ReviewKey, thread_id: str) -> Thread | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT * FROM threads WHERE id=? AND {_REVIEW_WHERE}", (thread_id, key.owner, key.repo, key.number)
            ).fetchone()
        return self._row_to_thread(row) if row else None

    def list_threads(self, key: ReviewKey) -> list[Thread]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM threads WHERE {_REVIEW_WHERE} ORDER BY rowid", (key.owner, key.repo, key.number)
            ).fetchall()
        return [self._row_to_thread(r) for r in rows]

    def save_thread(self, key: ReviewKey, thread: Thread) -> Thread:
        with self._lock:
            cur = self._conn.execute(
                f"""
                UPDATE threads SET draft=?, resolved=?, pending_resolved=?, current_json=?, version=version + 1
                WHERE id=? AND {_REVIEW_WHERE} AND version=?
                """,
                (
                    int(thread.draft),
                    int(thread.resolved),
                    None if thread.pending_resolved is None else int(thread.pending_resolved),
                    json.dumps(asdict(thread.current_args)),
                    thread.id,
                    key.owner,
                    key.repo,
                    key.number,
                    thread.version,
                ),
            )
            if not cur.rowcount:
                raise StaleThreadWrite(thread.id, thread.version)
            return self.get_thread(key, thread.id)

    # ------------------------------------------------------------------ #
    # Comments                                                             #
    # ------------------------------------------------------------------ #

    def save_comment(self, key: ReviewKey, comment: Comment) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO comments
                  (id, owner, repo, number, thread_id, username, text, timestamp, draft)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    comment.id,
                    key.owner,
                    key.repo,
                    key.number,
                    comment.thread_id,
                    comment.username,
                    comment.text,
                    comment.timestamp,
                    int(comment.draft),
                ),
            )

    def list_comments(self, key: ReviewKey, thread_id: str | None = None) -> list[Comment]:
        query = f"SELECT * FROM comments WHERE {_REVIEW_WHERE}"
        params: list = [key.owner, key.repo, key.number]
        if thread_id is not None:
            query += " AND thread_id=?"
            params.append(thread_id)
        with self._lock:
            rows = self._conn.execute(query + " ORDER BY timestamp", params).fetchall()
        return [
            Comment(
                id=r["id"],
                thread_id=r["thread_id"],
                username=r["username"] or "",
                text=r["text"] or "",
                timestamp=r["timestamp"],
                draft=bool(r["draft"]),
            )
            for r in rows
        ]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> Review:
        metadata = ReviewMetadata(
            owner=row["owner"],
            repo=row["repo"],
            number=row["number"],
            author=row["author"] or "",
            title=row["title"] or "",
            base=Ref(label=row["base_label"] or "", sha=row["base_sha"] or ""),
            head=Ref(label=row["head_label"] or "", sha=row["head_sha"] or ""),
            updated_at=row["updated_at"] or 0,
        )
        state = ReviewState(
            status=ReviewStatus(row["status"]),
            closed=bool(row["closed"]),
            reviewers=tuple(json.loads(row["reviewers_json"] or "[]")),
            approvers=tuple(json.loads(row["approvers_json"] or "[]")),
            unresolved=row["unresolved"],
            last_comment=row["last_comment"] or 0,
        )
        return Review(metadata=metadata, state=state)

    @staticmethod
    def _row_to_thread(row: sqlite3.Row) -> Thread:
        pending = row["pending_resolved"]
        return Thread(
            id=row["id"],
            username=row["username"] or "",
            draft=bool(row["draft"]),
            resolved=bool(row["resolved"]),
            pending_resolved=None if pending is None else bool(pending),
            original_args=ThreadArgs(**json.loads(row["original_json"])),
            current_args=ThreadArgs(**json.loads(row["current_json"])),
            version=row["version"],
        )
