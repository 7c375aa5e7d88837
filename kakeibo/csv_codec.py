"""CSV import and export for transactions, categories and budgets.

Exports wrap every field in double quotes, double any embedded quote and
join rows with ``\\n``; the first row is always the header. Imports accept
the same format (and unquoted variants), check the header against the
selected kind and drop rows that fail validation.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .config import APP_NAME
from .exceptions import CsvFormatError, NothingToImportError, ValidationError
from .models import (
    MAX_AMOUNT,
    PURPOSE_LABELS,
    TYPE_LABELS,
    Budget,
    Purpose,
    Transaction,
    TransactionType,
    is_iso_date,
    is_month_key,
    parse_amount,
)

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
CATEGORIES = "categories"
BUDGETS = "budgets"

HEADERS: Dict[str, List[str]] = {
    TRANSACTIONS: ["日付", "種別", "分類", "カテゴリ", "メモ", "金額"],
    CATEGORIES: ["カテゴリ"],
    BUDGETS: ["月", "カテゴリ", "予算"],
}

_TYPE_BY_LABEL = {label: t for t, label in TYPE_LABELS.items()}
_TYPE_BY_LABEL.update({t.value: t for t in TransactionType})
_PURPOSE_BY_LABEL = {label: p for p, label in PURPOSE_LABELS.items()}


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def parse_line(line: str) -> List[str]:
    """Split one CSV line into trimmed fields.

    Example:
        >>> parse_line('"a""b", c ,"x,y"')
        ['a"b', 'c', 'x,y']
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    fields.append("".join(current).strip())
    return fields


def parse_csv(text: str) -> List[List[str]]:
    """Parse CSV text into rows, skipping blank lines."""
    if text.startswith("\ufeff"):
        text = text[1:]
    rows = []
    for line in text.replace("\r\n", "\n").split("\n"):
        if not line.strip():
            continue
        rows.append(parse_line(line))
    return rows


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_rows(rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return buffer.getvalue().rstrip("\n")


def transaction_row(item: Transaction) -> List[Any]:
    if item.is_income:
        purpose_label = TYPE_LABELS[TransactionType.INCOME]
    else:
        purpose_label = item.purpose.label
    return [item.date, item.type.label, purpose_label, item.category, item.note or "", item.amount]


def encode_transactions(items: Iterable[Transaction]) -> str:
    return encode_rows([HEADERS[TRANSACTIONS], *(transaction_row(item) for item in items)])


def encode_categories(names: Iterable[str]) -> str:
    return encode_rows([HEADERS[CATEGORIES], *([name] for name in names)])


def encode_budgets(budgets: Iterable[Budget]) -> str:
    return encode_rows([HEADERS[BUDGETS], *([b.month, b.category, b.amount] for b in budgets)])


def export_filename(scope: str, period: Optional[str] = None) -> str:
    """Download name such as ``kakeibo-transactions-2024-01.csv``."""
    if period:
        return f"{APP_NAME}-{scope}-{period}.csv"
    return f"{APP_NAME}-{scope}.csv"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@dataclass
class ImportBatch:
    """Rows accepted from a CSV file, plus how many were dropped."""

    kind: str
    records: List[Any] = field(default_factory=list)
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.records)


def _cell(row: Sequence[str], index: int) -> str:
    return row[index] if index < len(row) else ""


def _transaction_from_row(row: Sequence[str]) -> Optional[Transaction]:
    day = _cell(row, 0)
    txn_type = _TYPE_BY_LABEL.get(_cell(row, 1))
    category = _cell(row, 3)
    if not is_iso_date(day) or txn_type is None or not category:
        return None
    try:
        amount = parse_amount(_cell(row, 5))
    except ValidationError:
        return None
    raw_purpose = _cell(row, 2)
    purpose = _PURPOSE_BY_LABEL.get(raw_purpose) or Purpose.coerce(raw_purpose)
    return Transaction(
        date=day,
        amount=amount,
        type=txn_type,
        purpose=purpose,
        category=category,
        note=_cell(row, 4),
    )


def _category_from_row(row: Sequence[str]) -> Optional[str]:
    return _cell(row, 0) or None


def _budget_from_row(row: Sequence[str]) -> Optional[Budget]:
    month = _cell(row, 0)
    category = _cell(row, 1)
    raw_amount = _cell(row, 2).replace(",", "")
    if not is_month_key(month) or not category or not raw_amount:
        return None
    try:
        amount = float(raw_amount)
    except ValueError:
        return None
    if not math.isfinite(amount) or amount < 0 or amount > MAX_AMOUNT:
        return None
    return Budget(month=month, category=category, amount=math.floor(amount))


_ROW_PARSERS: Dict[str, Callable[[Sequence[str]], Any]] = {
    TRANSACTIONS: _transaction_from_row,
    CATEGORIES: _category_from_row,
    BUDGETS: _budget_from_row,
}


def decode(text: str, kind: str) -> ImportBatch:
    """Validate and convert CSV text of the given kind.

    Raises:
        CsvFormatError: If the header does not belong to ``kind``.
        NothingToImportError: If no row survived validation.
    """
    if kind not in HEADERS:
        raise ValueError(f"unknown import kind '{kind}'")
    rows = parse_csv(text)
    if not rows or _cell(rows[0], 0) != HEADERS[kind][0]:
        raise CsvFormatError(f"CSVの見出しが正しくありません（{','.join(HEADERS[kind])}）")

    batch = ImportBatch(kind=kind)
    seen = set()
    parser = _ROW_PARSERS[kind]
    for row in rows[1:]:
        record = parser(row)
        if record is None:
            batch.dropped += 1
            continue
        if kind == CATEGORIES:
            if record in seen:
                continue
            seen.add(record)
        batch.records.append(record)

    if batch.dropped:
        logger.debug("Dropped %d invalid %s row(s) from import", batch.dropped, kind)
    if not batch.records:
        raise NothingToImportError("取り込めるデータがありません")
    return batch


def decode_transactions(text: str) -> ImportBatch:
    return decode(text, TRANSACTIONS)


def decode_categories(text: str) -> ImportBatch:
    return decode(text, CATEGORIES)


def decode_budgets(text: str) -> ImportBatch:
    return decode(text, BUDGETS)
