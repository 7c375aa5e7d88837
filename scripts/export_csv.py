#!/usr/bin/env python3
"""Export an owner's ledger data as kakeibo CSV files."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from kakeibo import csv_codec
from kakeibo.aggregation import month_items
from kakeibo.config import EXPORTS_DIR, ensure_data_directories
from kakeibo.exceptions import KakeiboError
from kakeibo.store import SQLiteStore


def main(owner: str, month: str | None = None, out_dir: Path | None = None) -> int:
    store = SQLiteStore()
    target = out_dir or EXPORTS_DIR
    if out_dir is None:
        ensure_data_directories()
    target.mkdir(parents=True, exist_ok=True)
    period = month or "all"

    try:
        transactions = store.list_transactions(owner)
        categories = [c.name for c in store.list_categories(owner)]
        budgets = store.list_budgets(owner, month) if month else store.list_all_budgets(owner)
    except KakeiboError as exc:
        print(f"Export failed: {exc}", file=sys.stderr)
        return 1

    if month:
        transactions = month_items(transactions, month)

    files = {
        csv_codec.export_filename("transactions", period): csv_codec.encode_transactions(transactions),
        csv_codec.export_filename("categories"): csv_codec.encode_categories(categories),
        csv_codec.export_filename("budgets", period): csv_codec.encode_budgets(budgets),
    }
    for name, text in files.items():
        path = target / name
        path.write_text(text, encoding="utf-8")
        print(f"Wrote {path}")
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Export kakeibo data as CSV files.')
    parser.add_argument('owner', help='Owner (email) whose data is exported')
    parser.add_argument('--month', help='Limit transactions and budgets to one YYYY-MM month')
    parser.add_argument('--out', type=Path, help='Output directory (defaults to data/exports)')
    args = parser.parse_args()
    sys.exit(main(args.owner, month=args.month, out_dir=args.out))
