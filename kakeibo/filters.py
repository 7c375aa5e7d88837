"""Transaction filtering.

A :class:`Filter` is a conjunction of independent predicates. Every
predicate left at its pass-all value (``"all"`` or an empty string) is
skipped, so relaxing any predicate can only keep or grow the result.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Sequence

from .aggregation import TransactionLike
from .exceptions import ValidationError
from .models import ALL, CategoryRegistry, Purpose, Transaction, TransactionType, is_iso_date

_TYPE_VALUES = {ALL} | {t.value for t in TransactionType}
_PURPOSE_VALUES = {ALL} | {p.value for p in Purpose}


@dataclass(frozen=True)
class Filter:
    type: str = ALL
    purpose: str = ALL
    category: str = ALL
    query: str = ""
    date_from: str = ""
    date_to: str = ""

    def __post_init__(self) -> None:
        type_value = getattr(self.type, "value", self.type) or ALL
        purpose_value = getattr(self.purpose, "value", self.purpose) or ALL
        if type_value not in _TYPE_VALUES:
            raise ValidationError(f"種別が正しくありません: {self.type}")
        if purpose_value not in _PURPOSE_VALUES:
            raise ValidationError(f"分類が正しくありません: {self.purpose}")
        object.__setattr__(self, "type", type_value)
        object.__setattr__(self, "purpose", purpose_value)
        object.__setattr__(self, "category", self.category or ALL)
        object.__setattr__(self, "query", self.query or "")
        object.__setattr__(self, "date_from", self.date_from or "")
        object.__setattr__(self, "date_to", self.date_to or "")
        for bound in (self.date_from, self.date_to):
            if bound and not is_iso_date(bound):
                raise ValidationError(f"日付の形式が正しくありません: {bound}")

    @property
    def is_default(self) -> bool:
        return self == Filter()


def _get(item: TransactionLike, key: str) -> Any:
    if isinstance(item, Transaction):
        value = getattr(item, key)
        return getattr(value, "value", value)
    value = item.get(key)
    return getattr(value, "value", value)


def matches(item: TransactionLike, flt: Filter) -> bool:
    """Return True when ``item`` passes every active predicate of ``flt``."""
    item_type = _get(item, "type")
    if flt.type != ALL and item_type != flt.type:
        return False

    # Income entries carry no meaningful purpose and are never purpose-filtered.
    if flt.purpose != ALL and item_type == TransactionType.EXPENSE.value:
        if Purpose.coerce(_get(item, "purpose")).value != flt.purpose:
            return False

    if flt.category != ALL and _get(item, "category") != flt.category:
        return False

    query = flt.query.strip().lower()
    if query and query not in str(_get(item, "note") or "").lower():
        return False

    day = str(_get(item, "date") or "")
    if flt.date_from and day < flt.date_from:
        return False
    if flt.date_to and day > flt.date_to:
        return False
    return True


def apply_filter(items: Iterable[TransactionLike], flt: Filter) -> List[TransactionLike]:
    """Apply filters to data, preserving the input order."""
    return [item for item in items if matches(item, flt)]


def category_options(
    registry: CategoryRegistry,
    transactions: Sequence[TransactionLike],
    txn_type: str = ALL,
) -> List[str]:
    """Categories selectable under the given type filter.

    With no type filter every registered category is offered. With a
    concrete type only registered categories that at least one transaction
    of that type uses are offered, in registry order.
    """
    if txn_type == ALL:
        return list(registry)
    used = {_get(item, "category") for item in transactions if _get(item, "type") == txn_type}
    return [name for name in registry if name in used]


def normalize_filter(
    flt: Filter,
    registry: CategoryRegistry,
    transactions: Sequence[TransactionLike],
) -> Filter:
    """Restore the filter invariants after the type filter or categories change.

    * a purpose filter only makes sense for expenses, so any other type
      filter resets it to ``all``;
    * a category that is no longer offered for the current type filter
      resets to ``all``.
    """
    result = flt
    if result.type != TransactionType.EXPENSE.value and result.purpose != ALL:
        result = replace(result, purpose=ALL)
    if result.category != ALL:
        if result.category not in category_options(registry, transactions, result.type):
            result = replace(result, category=ALL)
    return result
