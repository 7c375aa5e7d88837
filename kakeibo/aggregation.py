"""Aggregations over ledger transactions.

All functions are pure: they accept a sequence of transactions (either
:class:`~kakeibo.models.Transaction` objects or plain row mappings as
returned by the store) and return new values without mutating the input.
Amounts are whole yen, so every sum is exact integer arithmetic.

Grouping is done with pandas, mirroring the rest of the analytics code,
and results are handed back as plain ``dict``/``list`` values so callers
never have to reason about numpy scalar types.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence, Union

import numpy as np
import pandas as pd

from .models import Purpose, Transaction, TransactionType, month_of

TransactionLike = Union[Transaction, Mapping[str, Any]]

FRAME_COLUMNS = ["id", "date", "month", "amount", "type", "purpose", "category", "note"]

_EXPENSE = TransactionType.EXPENSE.value
_INCOME = TransactionType.INCOME.value


def _record(item: TransactionLike) -> Dict[str, Any]:
    if isinstance(item, Transaction):
        return {
            "id": item.id,
            "date": item.date,
            "month": item.month,
            "amount": item.amount,
            "type": item.type.value,
            "purpose": item.purpose.value,
            "category": item.category,
            "note": item.note,
        }
    raw_type = item.get("type")
    txn_type = raw_type.value if isinstance(raw_type, TransactionType) else str(raw_type or "")
    purpose = Purpose.coerce(item.get("purpose"))
    if txn_type == _INCOME:
        purpose = Purpose.CONSUMPTION
    day = str(item.get("date") or "")
    return {
        "id": item.get("id"),
        "date": day,
        "month": month_of(day),
        "amount": abs(int(item.get("amount") or 0)),
        "type": txn_type,
        "purpose": purpose.value,
        "category": item.get("category") or "",
        "note": item.get("note") or "",
    }


def transactions_frame(items: Iterable[TransactionLike]) -> pd.DataFrame:
    """Build a DataFrame with one row per transaction.

    Columns: id, date, month, amount, type, purpose, category, note, signed.
    ``signed`` is the amount with expenses negated, handy for running
    balances in charts.
    """
    frame = pd.DataFrame([_record(item) for item in items], columns=FRAME_COLUMNS)
    frame = frame.astype({"amount": "int64"})
    frame["signed"] = np.where(frame["type"] == _EXPENSE, -frame["amount"], frame["amount"])
    frame.loc[~frame["type"].isin([_EXPENSE, _INCOME]), "signed"] = 0
    return frame


def month_items(txns: Sequence[TransactionLike], month: str) -> List[TransactionLike]:
    """Return the transactions dated inside ``month`` (``YYYY-MM``)."""
    out = []
    for item in txns:
        day = item.date if isinstance(item, Transaction) else str(item.get("date") or "")
        if month_of(day) == month:
            out.append(item)
    return out


def totals(items: Iterable[TransactionLike]) -> Dict[str, int]:
    """Return income, expense and balance for ``items``.

    Example:
        >>> totals([Transaction("2024-01-05", 1200, "expense", "食費"),
        ...         Transaction("2024-01-10", 50000, "income", "労働")])
        {'income': 50000, 'expense': 1200, 'balance': 48800}
    """
    frame = transactions_frame(items)
    income = int(frame.loc[frame["type"] == _INCOME, "amount"].sum())
    expense = int(frame.loc[frame["type"] == _EXPENSE, "amount"].sum())
    return {"income": income, "expense": expense, "balance": income - expense}


def _expense_groups(items: Iterable[TransactionLike], key: str) -> Dict[str, int]:
    frame = transactions_frame(items)
    expense = frame[frame["type"] == _EXPENSE]
    if expense.empty:
        return {}
    grouped = expense.groupby(key, sort=False)["amount"].sum()
    return {str(name): int(value) for name, value in grouped.items()}


def category_breakdown(items: Iterable[TransactionLike]) -> Dict[str, int]:
    """Map category name to summed expense amount; income is ignored."""
    return _expense_groups(items, "category")


def category_spend_map(items: Iterable[TransactionLike]) -> Dict[str, int]:
    """Per-category spend used by the budget views."""
    return category_breakdown(items)


def purpose_breakdown(items: Iterable[TransactionLike]) -> Dict[str, int]:
    """Map purpose value to summed expense amount.

    Entries with a missing or unknown purpose are counted as consumption.
    """
    return _expense_groups(items, "purpose")


def monthly_series_frame(all_txns: Iterable[TransactionLike]) -> pd.DataFrame:
    """Full-history trend with columns month, income, expense, balance.

    Rows are sorted ascending by month key, which is chronological for
    ``YYYY-MM`` strings.
    """
    frame = transactions_frame(all_txns)
    columns = ["month", "income", "expense", "balance"]
    if frame.empty:
        return pd.DataFrame(columns=columns)

    income_by_month = frame[frame["type"] == _INCOME].groupby("month")["amount"].sum()
    expense_by_month = frame[frame["type"] == _EXPENSE].groupby("month")["amount"].sum()

    rows = []
    for month in sorted(frame["month"].unique()):
        income = int(income_by_month.get(month, 0))
        expense = int(expense_by_month.get(month, 0))
        rows.append({
            "month": month,
            "income": income,
            "expense": expense,
            "balance": income - expense,
        })
    return pd.DataFrame(rows, columns=columns)


def monthly_series(all_txns: Iterable[TransactionLike]) -> List[Dict[str, Any]]:
    """Same as :func:`monthly_series_frame` but as a list of dicts."""
    series = monthly_series_frame(all_txns)
    return [
        {
            "month": row.month,
            "income": int(row.income),
            "expense": int(row.expense),
            "balance": int(row.balance),
        }
        for row in series.itertuples(index=False)
    ]
