"""
SQLite-backed repositories.

Each adjustment is one row: indexed columns for the queries the engine runs
(guild+status, guild+stage, status+stage, pattern) plus the full record as JSON.
Every UPDATE is guarded by `version = ?` so a stale writer fails instead of
silently overwriting a newer record.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator
import json
import logging
import sqlite3

from self_adjustment_engine.contracts import (
    Adjustment,
    AdjustmentStatus,
    InteractionOutcome,
    OutcomeGroup,
    Pattern,
    RolloutStage,
    now_utc,
)
from self_adjustment_engine.errors import AdjustmentNotFoundError, RepositoryError, StaleWriteError
from self_adjustment_engine.time_utils import to_utc_timestamp

from .base import (
    TERMINAL_FAILURE_STATUSES,
    AdjustmentRepository,
    OutcomeLog,
    PatternStore,
    pattern_sort_key,
)

logger = logging.getLogger(__name__)


def _epoch(value: datetime | None) -> float | None:
    if value is None:
        return None
    return float(to_utc_timestamp(value).timestamp())


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


class _SQLiteDatabase:
    """Shared connection handling for one SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            self._init_schema(conn)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=30.0)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise RepositoryError(f"Cannot open database {self.db_path}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise RepositoryError(str(exc)) from exc
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT; rolled back on any exception."""
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        raise NotImplementedError


class SQLiteAdjustmentRepository(_SQLiteDatabase, AdjustmentRepository):
    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS adjustments (
                adjustment_id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                pattern_id TEXT NOT NULL,
                status TEXT NOT NULL,
                rollout_stage TEXT NOT NULL,
                created_ts REAL NOT NULL,
                completed_ts REAL,
                version INTEGER NOT NULL DEFAULT 0,
                payload_json TEXT NOT NULL
            );
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_adj_guild_status ON adjustments(guild_id, status, created_ts DESC);"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_adj_guild_stage ON adjustments(guild_id, rollout_stage);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_adj_status_stage ON adjustments(status, rollout_stage);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_adj_pattern ON adjustments(guild_id, pattern_id);")

    @staticmethod
    def _row_values(adjustment: Adjustment) -> tuple[Any, ...]:
        return (
            adjustment.guild_id,
            adjustment.pattern_id,
            str(adjustment.status),
            str(adjustment.rollout_stage),
            _epoch(adjustment.timestamp),
            _epoch(adjustment.completed_at),
            adjustment.version,
            json.dumps(adjustment.to_dict(), sort_keys=True),
        )

    @staticmethod
    def _decode(payload_json: str) -> Adjustment:
        try:
            return Adjustment.from_dict(json.loads(payload_json))
        except (ValueError, KeyError, TypeError) as exc:
            raise RepositoryError(f"Malformed adjustment document: {exc}") from exc

    def add(self, adjustment: Adjustment) -> Adjustment:
        stored = replace(adjustment, version=0, updated_at=now_utc())
        with self._transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO adjustments(
                        guild_id, pattern_id, status, rollout_stage, created_ts,
                        completed_ts, version, payload_json, adjustment_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*self._row_values(stored), stored.adjustment_id),
                )
            except sqlite3.IntegrityError as exc:
                raise RepositoryError(f"Adjustment '{stored.adjustment_id}' already exists") from exc
        return stored

    def _get(self, conn: sqlite3.Connection, adjustment_id: str) -> Adjustment:
        row = conn.execute(
            "SELECT payload_json FROM adjustments WHERE adjustment_id = ?",
            (adjustment_id,),
        ).fetchone()
        if row is None:
            raise AdjustmentNotFoundError(adjustment_id)
        return self._decode(row[0])

    def _save(self, conn: sqlite3.Connection, adjustment: Adjustment) -> Adjustment:
        expected = adjustment.version
        stored = replace(adjustment, version=expected + 1, updated_at=now_utc())
        cursor = conn.execute(
            """
            UPDATE adjustments
            SET guild_id = ?, pattern_id = ?, status = ?, rollout_stage = ?, created_ts = ?,
                completed_ts = ?, version = ?, payload_json = ?
            WHERE adjustment_id = ? AND version = ?
            """,
            (*self._row_values(stored), stored.adjustment_id, expected),
        )
        if cursor.rowcount != 1:
            exists = conn.execute(
                "SELECT 1 FROM adjustments WHERE adjustment_id = ?", (stored.adjustment_id,)
            ).fetchone()
            if exists is None:
                raise AdjustmentNotFoundError(stored.adjustment_id)
            raise StaleWriteError(stored.adjustment_id, expected)
        return stored

    def get(self, adjustment_id: str) -> Adjustment:
        with self._connection() as conn:
            return self._get(conn, adjustment_id)

    def save(self, adjustment: Adjustment) -> Adjustment:
        with self._transaction() as conn:
            return self._save(conn, adjustment)

    def update_atomically(
        self,
        adjustment_id: str,
        mutate: Callable[[Adjustment], Adjustment],
    ) -> Adjustment:
        with self._transaction() as conn:
            return self._save(conn, mutate(self._get(conn, adjustment_id)))

    def find(
        self,
        guild_id: str | None = None,
        statuses: Iterable[AdjustmentStatus] | None = None,
        stages: Iterable[RolloutStage] | None = None,
        pattern_id: str | None = None,
    ) -> list[Adjustment]:
        clauses: list[str] = []
        params: list[Any] = []
        if guild_id is not None:
            clauses.append("guild_id = ?")
            params.append(guild_id)
        if statuses is not None:
            values = [str(s) for s in statuses]
            clauses.append(f"status IN ({_placeholders(values)})")
            params.extend(values)
        if stages is not None:
            values = [str(s) for s in stages]
            clauses.append(f"rollout_stage IN ({_placeholders(values)})")
            params.extend(values)
        if pattern_id is not None:
            clauses.append("pattern_id = ?")
            params.append(pattern_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT payload_json FROM adjustments {where} ORDER BY created_ts DESC",
                params,
            ).fetchall()
        return [self._decode(row[0]) for row in rows]

    def latest_timestamp(self, guild_id: str) -> datetime | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT payload_json FROM adjustments WHERE guild_id = ? ORDER BY created_ts DESC LIMIT 1",
                (guild_id,),
            ).fetchone()
        return self._decode(row[0]).timestamp if row else None

    def purge_expired(self, terminal_before: datetime, completed_before: datetime) -> int:
        terminal = [str(s) for s in TERMINAL_FAILURE_STATUSES]
        with self._transaction() as conn:
            removed = conn.execute(
                f"DELETE FROM adjustments WHERE status IN ({_placeholders(terminal)}) AND created_ts < ?",
                (*terminal, _epoch(terminal_before)),
            ).rowcount
            removed += conn.execute(
                "DELETE FROM adjustments WHERE status = ? AND completed_ts IS NOT NULL AND completed_ts < ?",
                (str(AdjustmentStatus.COMPLETED), _epoch(completed_before)),
            ).rowcount
        logger.info("Purged %d expired adjustments", removed)
        return removed


class SQLitePatternStore(_SQLiteDatabase, PatternStore):
    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS patterns (
                pattern_id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                approved INTEGER NOT NULL DEFAULT 0,
                created_ts REAL NOT NULL,
                payload_json TEXT NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_patterns_guild_approved ON patterns(guild_id, approved);")

    def add(self, pattern: Pattern) -> Pattern:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO patterns(pattern_id, guild_id, approved, created_ts, payload_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    pattern.pattern_id,
                    pattern.guild_id,
                    int(pattern.approved),
                    _epoch(pattern.timestamp),
                    json.dumps(pattern.to_dict(), sort_keys=True, default=str),
                ),
            )
        return pattern

    def get(self, pattern_id: str) -> Pattern | None:
        with self._connection() as conn:
            row = conn.execute("SELECT payload_json FROM patterns WHERE pattern_id = ?", (pattern_id,)).fetchone()
        return Pattern.from_dict(json.loads(row[0])) if row else None

    def list_approved(self, guild_id: str) -> list[Pattern]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT payload_json FROM patterns WHERE guild_id = ? AND approved = 1",
                (guild_id,),
            ).fetchall()
        return sorted((Pattern.from_dict(json.loads(r[0])) for r in rows), key=pattern_sort_key)


class SQLiteOutcomeLog(_SQLiteDatabase, OutcomeLog):
    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS outcomes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                adjustment_id TEXT,
                outcome_group TEXT,
                success INTEGER NOT NULL,
                error INTEGER NOT NULL,
                iterations INTEGER NOT NULL,
                user_satisfaction REAL NOT NULL,
                recorded_ts REAL NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_outcomes_guild ON outcomes(guild_id, recorded_ts);")

    def append(
        self,
        guild_id: str,
        outcome: InteractionOutcome,
        adjustment_id: str | None = None,
        group: OutcomeGroup | None = None,
        at: datetime | None = None,
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO outcomes(
                    guild_id, adjustment_id, outcome_group, success, error,
                    iterations, user_satisfaction, recorded_ts
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    guild_id,
                    adjustment_id,
                    str(group) if group is not None else None,
                    int(outcome.success),
                    int(outcome.error),
                    int(outcome.iterations),
                    float(outcome.user_satisfaction),
                    _epoch(at or now_utc()),
                ),
            )

    def count(self, guild_id: str) -> int:
        with self._connection() as conn:
            row = conn.execute("SELECT COUNT(*) FROM outcomes WHERE guild_id = ?", (guild_id,)).fetchone()
        return int(row[0])
