"""SQLite-backed persistence for transactions, categories, budgets and goals.

Every call is scoped to an owner; rows belonging to other owners are never
read or written. Each public method opens its own connection and commits
or rolls back as a unit, so a failed call leaves the stored data as it was.
Driver errors are re-raised as :class:`~kakeibo.exceptions.StoreError`.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .config import DB_PATH, ensure_data_directories
from .exceptions import StoreError, ValidationError
from .models import Budget, Category, SavingsGoal, Transaction

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    date TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    type TEXT NOT NULL CHECK (type IN ('expense', 'income')),
    purpose TEXT NOT NULL DEFAULT 'consumption'
        CHECK (purpose IN ('consumption', 'waste', 'investment')),
    category TEXT NOT NULL,
    note TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_txn_owner_date ON transactions (owner, date);
CREATE INDEX IF NOT EXISTS ix_txn_owner_category ON transactions (owner, category);

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (owner, name)
);

CREATE TABLE IF NOT EXISTS budgets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    month TEXT NOT NULL,
    category TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    created_at TEXT NOT NULL,
    UNIQUE (owner, month, category)
);

CREATE TABLE IF NOT EXISTS savings_goals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    target_amount INTEGER NOT NULL,
    current_amount INTEGER NOT NULL DEFAULT 0,
    due_date TEXT,
    created_at TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_owner(owner: str) -> str:
    if not owner or not str(owner).strip():
        raise ValidationError("ログインしてください")
    return str(owner).strip()


def _to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        owner=row["owner"],
        date=row["date"],
        amount=row["amount"],
        type=row["type"],
        purpose=row["purpose"],
        category=row["category"],
        note=row["note"] or "",
        created_at=row["created_at"],
    )


def _to_budget(row: sqlite3.Row) -> Budget:
    return Budget(
        id=row["id"],
        owner=row["owner"],
        month=row["month"],
        category=row["category"],
        amount=row["amount"],
        created_at=row["created_at"],
    )


def _to_goal(row: sqlite3.Row) -> SavingsGoal:
    return SavingsGoal(
        id=row["id"],
        owner=row["owner"],
        name=row["name"],
        target_amount=row["target_amount"],
        current_amount=row["current_amount"],
        due_date=row["due_date"],
        created_at=row["created_at"],
    )


def _insert_transaction_rows(
    conn: sqlite3.Connection,
    owner: str,
    txns: Iterable[Transaction],
    created_at: str,
) -> List[Transaction]:
    saved: List[Transaction] = []
    for txn in txns:
        cur = conn.execute(
            "INSERT INTO transactions (owner, date, amount, type, purpose, category, note, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                owner,
                txn.date,
                txn.amount,
                txn.type.value,
                txn.purpose.value,
                txn.category,
                txn.note or None,
                created_at,
            ),
        )
        saved.append(Transaction(
            id=cur.lastrowid,
            owner=owner,
            date=txn.date,
            amount=txn.amount,
            type=txn.type,
            purpose=txn.purpose,
            category=txn.category,
            note=txn.note,
            created_at=created_at,
        ))
    return saved


def _insert_category_rows(conn: sqlite3.Connection, owner: str, names: Iterable[str], created_at: str) -> int:
    records = [(owner, name, created_at) for name in names]
    conn.executemany(
        "INSERT INTO categories (owner, name, created_at) VALUES (?, ?, ?)",
        records,
    )
    return len(records)


def _upsert_budget_rows(conn: sqlite3.Connection, owner: str, budgets: Iterable[Budget], created_at: str) -> int:
    records = [(owner, b.month, b.category, b.amount, created_at) for b in budgets]
    conn.executemany(
        "INSERT INTO budgets (owner, month, category, amount, created_at) VALUES (?, ?, ?, ?, ?) "
        "ON CONFLICT (owner, month, category) DO UPDATE SET amount = excluded.amount",
        records,
    )
    return len(records)


class SQLiteStore:
    """Owner-scoped CRUD collections backed by a single SQLite file."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """Initialize the store.

        Args:
            db_path: Optional custom database file. Defaults to DB_PATH
                     from config.
        """
        self.db_path = Path(db_path) if db_path is not None else DB_PATH
        self._initialized = False

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path == DB_PATH:
            ensure_data_directories()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as exc:
            raise StoreError(f"could not open database {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            if not self._initialized:
                conn.executescript(SCHEMA_SQL)
                self._initialized = True
            yield conn
            conn.commit()
        except (sqlite3.Error, OverflowError) as exc:
            conn.rollback()
            logger.warning("Store operation failed: %s", exc)
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def list_transactions(self, owner: str) -> List[Transaction]:
        """Return the owner's transactions, newest date first."""
        owner = _require_owner(owner)
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions WHERE owner = ? "
                "ORDER BY date DESC, created_at DESC, id DESC",
                (owner,),
            ).fetchall()
        return [_to_transaction(row) for row in rows]

    def insert_transaction(self, owner: str, txn: Transaction) -> Transaction:
        return self.insert_transactions(owner, [txn])[0]

    def insert_transactions(self, owner: str, txns: Sequence[Transaction]) -> List[Transaction]:
        owner = _require_owner(owner)
        with self.connect() as conn:
            saved = _insert_transaction_rows(conn, owner, txns, _now())
        logger.debug("Inserted %d transaction(s) for %s", len(saved), owner)
        return saved

    def delete_transaction(self, owner: str, transaction_id: int) -> bool:
        owner = _require_owner(owner)
        with self.connect() as conn:
            cur = conn.execute(
                "DELETE FROM transactions WHERE owner = ? AND id = ?",
                (owner, transaction_id),
            )
        return cur.rowcount > 0

    def count_transactions_by_category(self, owner: str, category: str) -> int:
        owner = _require_owner(owner)
        with self.connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM transactions WHERE owner = ? AND category = ?",
                (owner, category),
            ).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self, owner: str) -> List[Category]:
        owner = _require_owner(owner)
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM categories WHERE owner = ? ORDER BY created_at ASC, id ASC",
                (owner,),
            ).fetchall()
        return [
            Category(id=row["id"], owner=row["owner"], name=row["name"], created_at=row["created_at"])
            for row in rows
        ]

    def insert_category(self, owner: str, name: str) -> None:
        self.insert_categories(owner, [name])

    def insert_categories(self, owner: str, names: Iterable[str]) -> int:
        owner = _require_owner(owner)
        with self.connect() as conn:
            count = _insert_category_rows(conn, owner, names, _now())
        logger.debug("Inserted %d categor(ies) for %s", count, owner)
        return count

    def rename_category(self, owner: str, old: str, new: str) -> int:
        """Rename a category and cascade the new name to its transactions.

        Budgets recorded under the old name follow the rename too. Returns
        the number of transactions that were updated.
        """
        owner = _require_owner(owner)
        with self.connect() as conn:
            conn.execute(
                "UPDATE categories SET name = ? WHERE owner = ? AND name = ?",
                (new, owner, old),
            )
            cur = conn.execute(
                "UPDATE transactions SET category = ? WHERE owner = ? AND category = ?",
                (new, owner, old),
            )
            updated = cur.rowcount
            conn.execute(
                "UPDATE budgets SET category = ? WHERE owner = ? AND category = ?",
                (new, owner, old),
            )
        logger.debug("Renamed category %r -> %r for %s (%d transactions)", old, new, owner, updated)
        return updated

    def delete_category(self, owner: str, name: str) -> None:
        """Delete a category together with its budgets in every month."""
        owner = _require_owner(owner)
        with self.connect() as conn:
            conn.execute("DELETE FROM categories WHERE owner = ? AND name = ?", (owner, name))
            conn.execute("DELETE FROM budgets WHERE owner = ? AND category = ?", (owner, name))

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def list_budgets(self, owner: str, month: str) -> List[Budget]:
        owner = _require_owner(owner)
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM budgets WHERE owner = ? AND month = ? ORDER BY created_at ASC, id ASC",
                (owner, month),
            ).fetchall()
        return [_to_budget(row) for row in rows]

    def list_all_budgets(self, owner: str) -> List[Budget]:
        owner = _require_owner(owner)
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM budgets WHERE owner = ? ORDER BY month ASC, created_at ASC, id ASC",
                (owner,),
            ).fetchall()
        return [_to_budget(row) for row in rows]

    def upsert_budget(self, owner: str, month: str, category: str, amount: int) -> None:
        """Insert or update the budget identified by (owner, month, category)."""
        owner = _require_owner(owner)
        budget = Budget(month=month, category=category, amount=amount)
        with self.connect() as conn:
            _upsert_budget_rows(conn, owner, [budget], _now())

    def upsert_budgets(self, owner: str, budgets: Sequence[Budget]) -> int:
        owner = _require_owner(owner)
        with self.connect() as conn:
            return _upsert_budget_rows(conn, owner, budgets, _now())

    def import_records(
        self,
        owner: str,
        new_categories: Sequence[str] = (),
        transactions: Sequence[Transaction] = (),
        budgets: Sequence[Budget] = (),
    ) -> None:
        """Insert categories plus transactions and budgets as one unit.

        Used by CSV import: if any row fails, none of the categories,
        transactions or budgets are kept.
        """
        owner = _require_owner(owner)
        created_at = _now()
        with self.connect() as conn:
            _insert_category_rows(conn, owner, new_categories, created_at)
            _insert_transaction_rows(conn, owner, transactions, created_at)
            _upsert_budget_rows(conn, owner, budgets, created_at)
        logger.debug(
            "Imported %d categor(ies), %d transaction(s), %d budget(s) for %s",
            len(new_categories), len(transactions), len(budgets), owner,
        )

    def delete_budgets(self, owner: str, month: str, category: Optional[str] = None) -> int:
        owner = _require_owner(owner)
        sql = "DELETE FROM budgets WHERE owner = ? AND month = ?"
        params: Tuple = (owner, month)
        if category is not None:
            sql += " AND category = ?"
            params = params + (category,)
        with self.connect() as conn:
            cur = conn.execute(sql, params)
        return cur.rowcount

    def replace_budgets(self, owner: str, month: str, rows: Iterable[Tuple[str, int]]) -> int:
        """Delete every budget of ``month`` and insert ``rows`` in its place.

        Both steps share one transaction, so a failed insert keeps the old
        budgets.
        """
        owner = _require_owner(owner)
        created_at = _now()
        records = [(owner, month, category, int(amount), created_at) for category, amount in rows]
        with self.connect() as conn:
            conn.execute("DELETE FROM budgets WHERE owner = ? AND month = ?", (owner, month))
            conn.executemany(
                "INSERT INTO budgets (owner, month, category, amount, created_at) VALUES (?, ?, ?, ?, ?)",
                records,
            )
        return len(records)

    # ------------------------------------------------------------------
    # Savings goals
    # ------------------------------------------------------------------

    def list_goals(self, owner: str) -> List[SavingsGoal]:
        owner = _require_owner(owner)
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM savings_goals WHERE owner = ? ORDER BY created_at ASC, id ASC",
                (owner,),
            ).fetchall()
        return [_to_goal(row) for row in rows]

    def insert_goal(self, owner: str, goal: SavingsGoal) -> int:
        owner = _require_owner(owner)
        with self.connect() as conn:
            cur = conn.execute(
                "INSERT INTO savings_goals (owner, name, target_amount, current_amount, due_date, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (owner, goal.name, goal.target_amount, goal.current_amount, goal.due_date, _now()),
            )
        return int(cur.lastrowid)

    def update_goal_progress(self, owner: str, goal_id: int, current_amount: int) -> bool:
        owner = _require_owner(owner)
        with self.connect() as conn:
            cur = conn.execute(
                "UPDATE savings_goals SET current_amount = ? WHERE owner = ? AND id = ?",
                (int(current_amount), owner, goal_id),
            )
        return cur.rowcount > 0

    def delete_goal(self, owner: str, goal_id: int) -> bool:
        owner = _require_owner(owner)
        with self.connect() as conn:
            cur = conn.execute(
                "DELETE FROM savings_goals WHERE owner = ? AND id = ?",
                (owner, goal_id),
            )
        return cur.rowcount > 0
