"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from uuid import UUID

from atlas_classifier.domain.movements import (
    LearningLogEntry,
    LearningRule,
    Movement,
)
from atlas_classifier.domain.value_objects import (
    AmountSign,
    LearningAction,
    ReconciliationStatus,
    RuleSource,
    Scope,
)
from atlas_classifier.exceptions import DuplicateLearnKeyError, PersistenceError
from atlas_classifier.repositories.interfaces import (
    LearningLogRepository,
    LearningRuleRepository,
    MovementRepository,
)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        raise PersistenceError(operation, str(e)) from e


class SQLiteDatabase:
    """SQLite database connection manager."""

    def __init__(
        self, path: str | Path = ":memory:", check_same_thread: bool = True
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path, check_same_thread=self._check_same_thread
            )
            self._connection.row_factory = sqlite3.Row
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        with _translate_errors("initialize"):
            conn.executescript(
                """
                -- Bank movements table
                CREATE TABLE IF NOT EXISTS movements (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    description TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    counterparty TEXT,
                    reconciliation_status TEXT NOT NULL DEFAULT 'unmatched',
                    learn_key TEXT,
                    category TEXT,
                    scope TEXT NOT NULL DEFAULT 'personal',
                    property_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_movements_account_date
                    ON movements(account_id, date);
                CREATE INDEX IF NOT EXISTS idx_movements_learn_key
                    ON movements(learn_key, account_id, date);

                -- Learning rules table
                CREATE TABLE IF NOT EXISTS learning_rules (
                    id TEXT PRIMARY KEY,
                    learn_key TEXT NOT NULL UNIQUE,
                    category TEXT NOT NULL,
                    scope TEXT NOT NULL,
                    property_id TEXT,
                    source TEXT NOT NULL DEFAULT 'implicit',
                    counterparty_pattern TEXT NOT NULL DEFAULT '',
                    description_pattern TEXT NOT NULL DEFAULT '',
                    amount_sign TEXT NOT NULL,
                    applied_count INTEGER NOT NULL DEFAULT 0,
                    last_applied_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                -- Learning log table (append-only)
                CREATE TABLE IF NOT EXISTS learning_log (
                    id TEXT PRIMARY KEY,
                    action TEXT NOT NULL,
                    learn_key TEXT NOT NULL,
                    category TEXT NOT NULL,
                    scope TEXT NOT NULL,
                    property_id TEXT,
                    affected_count INTEGER,
                    timestamp TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_learning_log_key ON learning_log(learn_key);
                """
            )

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SQLiteMovementRepository(MovementRepository):
    """SQLite implementation of MovementRepository."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    def add(self, movement: Movement) -> None:
        conn = self._db.get_connection()
        with _translate_errors("add_movement"):
            conn.execute(
                """
                INSERT INTO movements (id, account_id, date, description, amount,
                                       counterparty, reconciliation_status, learn_key,
                                       category, scope, property_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(movement.id),
                    movement.account_id,
                    movement.date.isoformat(),
                    movement.description,
                    str(movement.amount),
                    movement.counterparty,
                    movement.reconciliation_status.value,
                    movement.learn_key,
                    movement.category,
                    movement.scope.value,
                    movement.property_id,
                    movement.created_at.isoformat(),
                    movement.updated_at.isoformat(),
                ),
            )
            conn.commit()

    def get(self, movement_id: UUID) -> Movement | None:
        conn = self._db.get_connection()
        with _translate_errors("get_movement"):
            row = conn.execute(
                "SELECT * FROM movements WHERE id = ?", (str(movement_id),)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_movement(row)

    def update(self, movement: Movement) -> None:
        conn = self._db.get_connection()
        with _translate_errors("update_movement"):
            conn.execute(
                """
                UPDATE movements SET
                    account_id = ?,
                    date = ?,
                    description = ?,
                    amount = ?,
                    counterparty = ?,
                    reconciliation_status = ?,
                    learn_key = ?,
                    category = ?,
                    scope = ?,
                    property_id = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    movement.account_id,
                    movement.date.isoformat(),
                    movement.description,
                    str(movement.amount),
                    movement.counterparty,
                    movement.reconciliation_status.value,
                    movement.learn_key,
                    movement.category,
                    movement.scope.value,
                    movement.property_id,
                    movement.updated_at.isoformat(),
                    str(movement.id),
                ),
            )
            conn.commit()

    def delete(self, movement_id: UUID) -> None:
        conn = self._db.get_connection()
        with _translate_errors("delete_movement"):
            conn.execute("DELETE FROM movements WHERE id = ?", (str(movement_id),))
            conn.commit()

    def list_all(self) -> Iterable[Movement]:
        conn = self._db.get_connection()
        with _translate_errors("list_movements"):
            rows = conn.execute("SELECT * FROM movements ORDER BY date, rowid").fetchall()
        return [self._row_to_movement(row) for row in rows]

    def list_by_account(
        self,
        account_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Iterable[Movement]:
        conn = self._db.get_connection()
        query = "SELECT * FROM movements WHERE account_id = ?"
        params: list[str] = [account_id]
        if start_date:
            query += " AND date >= ?"
            params.append(start_date.isoformat())
        if end_date:
            query += " AND date <= ?"
            params.append(end_date.isoformat())
        query += " ORDER BY date, rowid"
        with _translate_errors("list_movements_by_account"):
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_movement(row) for row in rows]

    def list_by_learn_key(
        self,
        learn_key: str,
        account_id: str,
        start_date: date,
        end_date: date,
        status: ReconciliationStatus | None = None,
    ) -> Iterable[Movement]:
        conn = self._db.get_connection()
        query = """
            SELECT * FROM movements
            WHERE learn_key = ? AND account_id = ? AND date >= ? AND date <= ?
        """
        params: list[str] = [
            learn_key,
            account_id,
            start_date.isoformat(),
            end_date.isoformat(),
        ]
        if status is not None:
            query += " AND reconciliation_status = ?"
            params.append(status.value)
        query += " ORDER BY date, rowid"
        with _translate_errors("list_movements_by_learn_key"):
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_movement(row) for row in rows]

    def list_without_learn_key(
        self,
        account_id: str,
        start_date: date,
        end_date: date,
    ) -> Iterable[Movement]:
        conn = self._db.get_connection()
        with _translate_errors("list_movements_without_learn_key"):
            rows = conn.execute(
                """
                SELECT * FROM movements
                WHERE learn_key IS NULL AND account_id = ? AND date >= ? AND date <= ?
                ORDER BY date, rowid
                """,
                (account_id, start_date.isoformat(), end_date.isoformat()),
            ).fetchall()
        return [self._row_to_movement(row) for row in rows]

    def _row_to_movement(self, row: sqlite3.Row) -> Movement:
        return Movement(
            id=UUID(row["id"]),
            account_id=row["account_id"],
            date=date.fromisoformat(row["date"]),
            description=row["description"],
            amount=Decimal(row["amount"]),
            counterparty=row["counterparty"],
            reconciliation_status=ReconciliationStatus(row["reconciliation_status"]),
            learn_key=row["learn_key"],
            category=row["category"],
            scope=Scope(row["scope"]),
            property_id=row["property_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteLearningRuleRepository(LearningRuleRepository):
    """SQLite implementation of LearningRuleRepository."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    def add(self, rule: LearningRule) -> None:
        conn = self._db.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO learning_rules (id, learn_key, category, scope, property_id,
                                            source, counterparty_pattern, description_pattern,
                                            amount_sign, applied_count, last_applied_at,
                                            created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(rule.id),
                    rule.learn_key,
                    rule.category,
                    rule.scope.value,
                    rule.property_id,
                    rule.source.value,
                    rule.counterparty_pattern,
                    rule.description_pattern,
                    rule.amount_sign.value,
                    rule.applied_count,
                    rule.last_applied_at.isoformat() if rule.last_applied_at else None,
                    rule.created_at.isoformat(),
                    rule.updated_at.isoformat(),
                ),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            if "learn_key" in str(e):
                raise DuplicateLearnKeyError(rule.learn_key) from e
            raise PersistenceError("add_rule", str(e)) from e
        except sqlite3.Error as e:
            raise PersistenceError("add_rule", str(e)) from e

    def get(self, rule_id: UUID) -> LearningRule | None:
        conn = self._db.get_connection()
        with _translate_errors("get_rule"):
            row = conn.execute(
                "SELECT * FROM learning_rules WHERE id = ?", (str(rule_id),)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_rule(row)

    def get_by_learn_key(self, learn_key: str) -> LearningRule | None:
        conn = self._db.get_connection()
        with _translate_errors("get_rule_by_learn_key"):
            row = conn.execute(
                "SELECT * FROM learning_rules WHERE learn_key = ?", (learn_key,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_rule(row)

    def list_all(self) -> Iterable[LearningRule]:
        conn = self._db.get_connection()
        with _translate_errors("list_rules"):
            rows = conn.execute(
                "SELECT * FROM learning_rules ORDER BY updated_at DESC, rowid DESC"
            ).fetchall()
        return [self._row_to_rule(row) for row in rows]

    def update(self, rule: LearningRule) -> None:
        conn = self._db.get_connection()
        with _translate_errors("update_rule"):
            conn.execute(
                """
                UPDATE learning_rules SET
                    category = ?,
                    scope = ?,
                    property_id = ?,
                    source = ?,
                    counterparty_pattern = ?,
                    description_pattern = ?,
                    amount_sign = ?,
                    applied_count = ?,
                    last_applied_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    rule.category,
                    rule.scope.value,
                    rule.property_id,
                    rule.source.value,
                    rule.counterparty_pattern,
                    rule.description_pattern,
                    rule.amount_sign.value,
                    rule.applied_count,
                    rule.last_applied_at.isoformat() if rule.last_applied_at else None,
                    rule.updated_at.isoformat(),
                    str(rule.id),
                ),
            )
            conn.commit()

    def delete(self, rule_id: UUID) -> None:
        conn = self._db.get_connection()
        with _translate_errors("delete_rule"):
            conn.execute("DELETE FROM learning_rules WHERE id = ?", (str(rule_id),))
            conn.commit()

    def _row_to_rule(self, row: sqlite3.Row) -> LearningRule:
        return LearningRule(
            id=UUID(row["id"]),
            learn_key=row["learn_key"],
            category=row["category"],
            scope=Scope(row["scope"]),
            property_id=row["property_id"],
            source=RuleSource(row["source"]),
            counterparty_pattern=row["counterparty_pattern"],
            description_pattern=row["description_pattern"],
            amount_sign=AmountSign(row["amount_sign"]),
            applied_count=row["applied_count"],
            last_applied_at=datetime.fromisoformat(row["last_applied_at"])
            if row["last_applied_at"]
            else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteLearningLogRepository(LearningLogRepository):
    """SQLite implementation of LearningLogRepository."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self._db = db

    def append(self, entry: LearningLogEntry) -> None:
        conn = self._db.get_connection()
        with _translate_errors("append_log"):
            conn.execute(
                """
                INSERT INTO learning_log (id, action, learn_key, category, scope,
                                          property_id, affected_count, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(entry.id),
                    entry.action.value,
                    entry.learn_key,
                    entry.category,
                    entry.scope.value,
                    entry.property_id,
                    entry.affected_count,
                    entry.timestamp.isoformat(),
                ),
            )
            conn.commit()

    def list_all(self, learn_key: str | None = None) -> Iterable[LearningLogEntry]:
        conn = self._db.get_connection()
        with _translate_errors("list_log"):
            if learn_key is None:
                rows = conn.execute(
                    "SELECT * FROM learning_log ORDER BY rowid"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM learning_log WHERE learn_key = ? ORDER BY rowid",
                    (learn_key,),
                ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def _row_to_entry(self, row: sqlite3.Row) -> LearningLogEntry:
        return LearningLogEntry(
            id=UUID(row["id"]),
            action=LearningAction(row["action"]),
            learn_key=row["learn_key"],
            category=row["category"],
            scope=Scope(row["scope"]),
            property_id=row["property_id"],
            affected_count=row["affected_count"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )
