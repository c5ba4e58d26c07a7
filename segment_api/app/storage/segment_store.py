"""
SQL storage for segments and memberships.

``SegmentStore`` owns every read and write against the ``segment`` and
``users_in_segment`` tables.  Constraint violations reported by SQLite
are translated into domain errors by looking the failed constraint up in
``CONSTRAINT_ERRORS``; the store never checks before it acts, so two
concurrent callers cannot race past a uniqueness or reference rule.
All statements are parameterized.  Any other failure, including pool
timeouts and values SQLite cannot bind, surfaces as ``StorageFailure``.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Type

from segment_api.app.core.db import ConnectionPool
from segment_api.app.core.errors import (
    SchemaMismatchError,
    SegmentAlreadyExists,
    SegmentError,
    SegmentNotFound,
    StorageFailure,
    UserAlreadyInSegment,
    UserNotInSegment,
)

logger = logging.getLogger(__name__)

UNIQUE = "UNIQUE"
FOREIGN_KEY = "FOREIGN KEY"

# "UNIQUE constraint failed: users_in_segment.user_id, users_in_segment.segment"
# "FOREIGN KEY constraint failed"
_CONSTRAINT_MESSAGE = re.compile(r"^(?P<kind>[A-Z ]+?) constraint failed(?:: (?P<detail>.+))?$")


@dataclass(frozen=True)
class Constraint:
    """Identity of a table constraint: its type, table and columns."""

    kind: str
    table: str
    columns: Tuple[str, ...]


CONSTRAINT_ERRORS: Dict[Constraint, Type[SegmentError]] = {
    Constraint(UNIQUE, "segment", ("name",)): SegmentAlreadyExists,
    Constraint(UNIQUE, "users_in_segment", ("user_id", "segment")): UserAlreadyInSegment,
    Constraint(FOREIGN_KEY, "users_in_segment", ("segment",)): SegmentNotFound,
}


def parse_constraint(exc: sqlite3.IntegrityError, table: str) -> Optional[Constraint]:
    """Work out which constraint an ``IntegrityError`` refers to.

    SQLite names the columns of a failed UNIQUE constraint but says
    nothing about a failed FOREIGN KEY; in that case the constraint is
    the single foreign key of ``table`` known to ``CONSTRAINT_ERRORS``.
    """
    match = _CONSTRAINT_MESSAGE.match(str(exc))
    if not match:
        return None
    kind, detail = match.group("kind"), match.group("detail")
    if kind == UNIQUE and detail:
        qualified = [part.strip() for part in detail.split(",")]
        tables = {name.split(".", 1)[0] for name in qualified}
        if len(tables) != 1:
            return None
        columns = tuple(name.split(".", 1)[-1] for name in qualified)
        return Constraint(UNIQUE, tables.pop(), columns)
    if kind == FOREIGN_KEY:
        candidates = [c for c in CONSTRAINT_ERRORS if c.kind == FOREIGN_KEY and c.table == table]
        if len(candidates) == 1:
            return candidates[0]
    return None


class SegmentStore:
    """Persistence of segments and user memberships."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create_segment(self, name: str) -> None:
        try:
            with self._pool.connection() as conn, conn:
                conn.execute("INSERT INTO segment (name) VALUES (?)", (name,))
        except sqlite3.IntegrityError as exc:
            raise self._classify(exc, "segment", "creating segment") from exc
        except Exception as exc:
            raise StorageFailure(f"creating segment: {exc}") from exc

    def delete_segment(self, name: str) -> None:
        try:
            with self._pool.connection() as conn, conn:
                affected = conn.execute("DELETE FROM segment WHERE name = ?", (name,)).rowcount
        except Exception as exc:
            raise StorageFailure(f"deleting segment: {exc}") from exc
        if affected == 0:
            raise SegmentNotFound(name)

    def add_user_to_segment(self, user_id: int, segments: List[str]) -> None:
        """Insert one membership per segment in a single transaction.

        The first violation aborts and rolls back the whole batch.
        """
        rows = self._batch_rows(user_id, segments)
        try:
            with self._pool.connection() as conn, conn:
                conn.executemany(
                    "INSERT INTO users_in_segment (user_id, segment) VALUES (?, ?)", rows
                )
        except sqlite3.IntegrityError as exc:
            raise self._classify(exc, "users_in_segment", "adding user to segment") from exc
        except Exception as exc:
            raise StorageFailure(f"adding user to segment: {exc}") from exc

    def delete_user_from_segment(self, user_id: int, segments: List[str]) -> None:
        """Delete the given memberships in a single transaction.

        Fails with ``UserNotInSegment`` only when none of them existed.
        """
        rows = self._batch_rows(user_id, segments)
        try:
            with self._pool.connection() as conn, conn:
                affected = conn.executemany(
                    "DELETE FROM users_in_segment WHERE user_id = ? AND segment = ?", rows
                ).rowcount
        except Exception as exc:
            raise StorageFailure(f"deleting user from segment: {exc}") from exc
        if affected == 0:
            raise UserNotInSegment(f"user {user_id}")

    def get_user_segments(self, user_id: int) -> List[str]:
        try:
            with self._pool.connection() as conn:
                rows = conn.execute(
                    "SELECT segment FROM users_in_segment WHERE user_id = ? ORDER BY segment",
                    (user_id,),
                ).fetchall()
        except Exception as exc:
            raise StorageFailure(f"querying user segments: {exc}") from exc
        return [row["segment"] for row in rows]

    def ping(self) -> None:
        """Run a trivial query; raises ``StorageFailure`` if the database is unusable."""
        try:
            with self._pool.connection() as conn:
                conn.execute("SELECT 1").fetchone()
        except Exception as exc:
            raise StorageFailure(f"ping: {exc}") from exc

    def verify_constraints(self) -> None:
        """Check that every constraint in ``CONSTRAINT_ERRORS`` exists.

        Run once at startup, after ``init_db``.  A schema change that drops
        or renames one of them would otherwise turn domain errors into
        generic storage failures without anyone noticing.
        """
        with self._pool.connection() as conn:
            missing = [
                constraint
                for constraint in CONSTRAINT_ERRORS
                if not self._has_constraint(conn, constraint)
            ]
        if missing:
            names = ", ".join(
                f"{c.kind} {c.table}({', '.join(c.columns)})" for c in missing
            )
            raise SchemaMismatchError(f"schema is missing constraints: {names}")

    @staticmethod
    def _has_constraint(conn: sqlite3.Connection, constraint: Constraint) -> bool:
        # PRAGMA arguments cannot be bound; table names come from CONSTRAINT_ERRORS.
        if constraint.kind == UNIQUE:
            for index in conn.execute(f"PRAGMA index_list({constraint.table})").fetchall():
                if not index["unique"]:
                    continue
                columns = tuple(
                    info["name"]
                    for info in conn.execute(f"PRAGMA index_info({index['name']})").fetchall()
                )
                if columns == constraint.columns:
                    return True
            return False
        columns = tuple(
            row["from"]
            for row in conn.execute(f"PRAGMA foreign_key_list({constraint.table})").fetchall()
        )
        return columns == constraint.columns

    @staticmethod
    def _batch_rows(user_id: int, segments: Iterable[str]) -> List[Tuple[int, str]]:
        rows = [(user_id, segment) for segment in segments]
        if not rows:
            raise ValueError("segment batch must not be empty")
        return rows

    @staticmethod
    def _classify(exc: sqlite3.IntegrityError, table: str, operation: str) -> SegmentError:
        constraint = parse_constraint(exc, table)
        error_cls = CONSTRAINT_ERRORS.get(constraint) if constraint else None
        if error_cls is None:
            return StorageFailure(f"{operation}: {exc}")
        logger.debug("%s violated %s", operation, constraint)
        return error_cls()
