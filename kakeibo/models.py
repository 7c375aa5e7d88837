"""Domain records for the household ledger.

Transactions, categories, budgets and savings goals are plain dataclasses.
Transaction type and expense purpose are closed enums, and category names
are validated through :class:`CategoryRegistry` so that a name which is not
registered for the owner cannot slip into a transaction or a budget.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Tuple

from .exceptions import ValidationError

ALL = "all"

# Largest value an SQLite INTEGER column can hold.
MAX_AMOUNT = 2**63 - 1

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_LINE_BREAK_RE = re.compile(r"[\r\n]+")


class TransactionType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"

    @property
    def label(self) -> str:
        return TYPE_LABELS[self]


class Purpose(str, Enum):
    CONSUMPTION = "consumption"
    WASTE = "waste"
    INVESTMENT = "investment"

    @property
    def label(self) -> str:
        return PURPOSE_LABELS[self]

    @classmethod
    def coerce(cls, value: Any) -> "Purpose":
        """Return the matching purpose, falling back to consumption."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.CONSUMPTION


TYPE_LABELS = {
    TransactionType.EXPENSE: "支出",
    TransactionType.INCOME: "収入",
}

PURPOSE_LABELS = {
    Purpose.CONSUMPTION: "消費",
    Purpose.WASTE: "浪費",
    Purpose.INVESTMENT: "投資",
}


def parse_amount(raw: Any) -> int:
    """Convert user input into a non-negative whole-yen amount.

    Negative numbers are normalized to their absolute value rather than
    rejected. Fractions are truncated toward zero.

    Raises:
        ValidationError: If the value is empty, not a number or larger than
            MAX_AMOUNT.
    """
    if raw is None or isinstance(raw, bool):
        raise ValidationError("金額が正しくありません")
    if isinstance(raw, (int, float)):
        number = raw
    else:
        cleaned = str(raw).strip().replace(",", "").replace("¥", "").replace("円", "")
        if not cleaned:
            raise ValidationError("金額が正しくありません")
        try:
            number = float(cleaned)
        except ValueError as exc:
            raise ValidationError("金額が正しくありません") from exc
    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError("金額が正しくありません")
    amount = abs(int(number))
    if amount > MAX_AMOUNT:
        raise ValidationError("金額が大きすぎます")
    return amount


def is_iso_date(value: Any) -> bool:
    if not isinstance(value, str) or len(value) != 10:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_month_key(value: Any) -> bool:
    return isinstance(value, str) and bool(_MONTH_RE.match(value))


def month_of(day: str) -> str:
    """Return the ``YYYY-MM`` month key of an ISO date string."""
    return (day or "")[:7]


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


@dataclass
class Transaction:
    """A single income or expense entry.

    ``amount`` is always stored as a non-negative integer and ``purpose`` is
    forced to consumption for income entries. Line breaks in ``note`` become
    spaces so every transaction exports as a single CSV line.
    """

    date: str
    amount: int
    type: TransactionType
    category: str
    purpose: Purpose = Purpose.CONSUMPTION
    note: str = ""
    owner: str = ""
    id: Optional[int] = None
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        self.amount = parse_amount(self.amount)
        self.type = TransactionType(self.type)
        if self.type is TransactionType.INCOME:
            self.purpose = Purpose.CONSUMPTION
        else:
            self.purpose = Purpose.coerce(self.purpose)
        self.note = _LINE_BREAK_RE.sub(" ", self.note or "").strip()

    @property
    def month(self) -> str:
        return month_of(self.date)

    @property
    def is_expense(self) -> bool:
        return self.type is TransactionType.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.type is TransactionType.INCOME


@dataclass
class Category:
    name: str
    owner: str = ""
    id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class Budget:
    month: str
    category: str
    amount: int
    owner: str = ""
    id: Optional[int] = None
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not is_month_key(self.month):
            raise ValidationError(f"月の形式が正しくありません: {self.month}")
        if self.amount is None or int(self.amount) < 0:
            raise ValidationError("予算は0以上の数値で入力してください")
        if int(self.amount) > MAX_AMOUNT:
            raise ValidationError("予算が大きすぎます")
        self.amount = int(self.amount)


@dataclass
class SavingsGoal:
    name: str
    target_amount: int
    current_amount: int = 0
    due_date: Optional[str] = None
    owner: str = ""
    id: Optional[int] = None
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValidationError("目標名を入力してください")
        self.target_amount = parse_amount(self.target_amount)
        self.current_amount = parse_amount(self.current_amount)
        if self.target_amount <= 0:
            raise ValidationError("目標金額は1以上で入力してください")
        if self.due_date is not None and not is_iso_date(self.due_date):
            raise ValidationError(f"期限の形式が正しくありません: {self.due_date}")


@dataclass(frozen=True)
class CategoryRegistry:
    """Ordered, duplicate-free set of an owner's category names."""

    names: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "CategoryRegistry":
        ordered = []
        for raw in names:
            name = (raw or "").strip()
            if name and name not in ordered:
                ordered.append(name)
        return cls(tuple(ordered))

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)

    def require(self, name: str) -> str:
        """Return ``name`` stripped, or raise if it is not registered."""
        cleaned = (name or "").strip()
        if cleaned not in self.names:
            raise ValidationError(f"カテゴリ「{cleaned}」は登録されていません")
        return cleaned

    def add(self, name: str) -> "CategoryRegistry":
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("カテゴリ名を入力してください")
        if cleaned in self.names:
            raise ValidationError(f"カテゴリ「{cleaned}」は既にあります")
        return CategoryRegistry(self.names + (cleaned,))

    def rename(self, old: str, new: str) -> "CategoryRegistry":
        cleaned = (new or "").strip()
        self.require(old)
        if not cleaned:
            raise ValidationError("カテゴリ名を入力してください")
        if cleaned != old and cleaned in self.names:
            raise ValidationError(f"カテゴリ「{cleaned}」は既にあります")
        return CategoryRegistry(tuple(cleaned if n == old else n for n in self.names))

    def remove(self, name: str) -> "CategoryRegistry":
        return CategoryRegistry(tuple(n for n in self.names if n != name))
