"""Budget rollover between months.

When a month is opened for the first time and has no budgets, the previous
month's budgets may be offered for copying. The offer is made at most once
per owner and month: the month is flagged as ``prompted`` before the user
answers, or as ``checked`` when there was nothing to offer. Flags are kept
in a small JSON file next to the database.

A manual copy from any month is always available and replaces the target
month's budgets entirely.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from .config import FLAGS_PATH
from .exceptions import ValidationError
from .models import is_month_key
from .store import SQLiteStore

logger = logging.getLogger(__name__)

CHECKED = "checked"
PROMPTED = "prompted"

# Outcomes reported by check_rollover
HAS_BUDGETS = "has_budgets"
ALREADY_FLAGGED = "already_flagged"
NO_SOURCE = "no_source"
DECLINED = "declined"
COPIED = "copied"


def previous_month(month: str) -> str:
    """Return the month before ``month``; ``2024-01`` gives ``2023-12``."""
    if not is_month_key(month):
        raise ValidationError(f"月の形式が正しくありません: {month}")
    year, mon = (int(part) for part in month.split("-"))
    if mon == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{mon - 1:02d}"


class RolloverFlags:
    """Per-owner, per-month prompt flags persisted as JSON."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else FLAGS_PATH
        self._flags: Dict[str, str] = self._load()

    @staticmethod
    def _key(owner: str, month: str) -> str:
        return f"{owner}:{month}"

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable rollover flags %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v in (CHECKED, PROMPTED)}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(self._flags, handle, indent=2, sort_keys=True, ensure_ascii=False)

    def get(self, owner: str, month: str) -> Optional[str]:
        return self._flags.get(self._key(owner, month))

    def mark(self, owner: str, month: str, state: str) -> None:
        if state not in (CHECKED, PROMPTED):
            raise ValueError(f"unknown rollover flag '{state}'")
        key = self._key(owner, month)
        if self._flags.get(key) == state:
            return
        self._flags[key] = state
        self._save()


@dataclass(frozen=True)
class RolloverOutcome:
    status: str
    source_month: Optional[str] = None
    copied: int = 0


def rollover_candidate(
    store: SQLiteStore,
    owner: str,
    month: str,
    flags: RolloverFlags,
) -> Optional[str]:
    """Return the month whose budgets should be offered for ``month``.

    Returns None when the month already has budgets, was flagged before, or
    the previous month has no budgets (in which case the month is flagged
    ``checked``). When a month is returned it has already been flagged
    ``prompted``, so the caller must show the offer now.
    """
    return _evaluate(store, owner, month, flags).source_month


def _evaluate(store: SQLiteStore, owner: str, month: str, flags: RolloverFlags) -> RolloverOutcome:
    if store.list_budgets(owner, month):
        return RolloverOutcome(HAS_BUDGETS)
    if flags.get(owner, month):
        return RolloverOutcome(ALREADY_FLAGGED)
    source = previous_month(month)
    if not store.list_budgets(owner, source):
        flags.mark(owner, month, CHECKED)
        return RolloverOutcome(NO_SOURCE)
    flags.mark(owner, month, PROMPTED)
    return RolloverOutcome(PROMPTED, source_month=source)


def accept_rollover(store: SQLiteStore, owner: str, source: str, target: str) -> int:
    """Copy every budget row of ``source`` into ``target``."""
    rows = [(b.category, b.amount) for b in store.list_budgets(owner, source)]
    if not rows:
        return 0
    copied = store.replace_budgets(owner, target, rows)
    logger.info("Rolled over %d budget(s) from %s to %s for %s", copied, source, target, owner)
    return copied


def check_rollover(
    store: SQLiteStore,
    owner: str,
    month: str,
    flags: RolloverFlags,
    confirm: Callable[[str, str], bool],
) -> RolloverOutcome:
    """Run the once-per-month rollover offer for ``month``.

    ``confirm(source, target)`` is called at most once and only when the
    previous month has budgets to offer.
    """
    outcome = _evaluate(store, owner, month, flags)
    if outcome.status != PROMPTED:
        return outcome
    if not confirm(outcome.source_month, month):
        return RolloverOutcome(DECLINED, source_month=outcome.source_month)
    copied = accept_rollover(store, owner, outcome.source_month, month)
    return RolloverOutcome(COPIED, source_month=outcome.source_month, copied=copied)


def copy_budgets(store: SQLiteStore, owner: str, source: str, target: str) -> int:
    """Replace the budgets of ``target`` with those of ``source``.

    Raises:
        ValidationError: If no distinct source month was chosen or the
            source month has no budgets.
    """
    if not source or source == target:
        raise ValidationError("コピー元の月を選んでください")
    if not is_month_key(source) or not is_month_key(target):
        raise ValidationError("月の形式が正しくありません")
    rows = [(b.category, b.amount) for b in store.list_budgets(owner, source)]
    if not rows:
        raise ValidationError("コピー元の予算がありません")
    copied = store.replace_budgets(owner, target, rows)
    logger.info("Copied %d budget(s) from %s to %s for %s", copied, source, target, owner)
    return copied
