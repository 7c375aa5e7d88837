"""Top-level package for kakeibo, a household budgeting ledger.

The primary modules are:

* ``aggregation`` – monthly totals, category/purpose breakdowns and trends
* ``budgets`` – budget totals, utilisation and per-category chart rows
* ``filters`` – the transaction filter and its invariants
* ``rollover`` – copying budgets from one month to the next
* ``csv_codec`` – CSV import and export
* ``state`` – application state and the transitions user actions trigger
* ``visualization`` – functions that generate Plotly figures

To run the dashboard from the command line you can execute:

```bash
streamlit run kakeibo/dashboard.py
```
"""

from . import aggregation  # noqa: F401  # re-exported for convenience
from . import budgets  # noqa: F401  # re-exported for convenience
from . import csv_codec  # noqa: F401  # re-exported for convenience
from . import filters  # noqa: F401  # re-exported for convenience
from . import rollover  # noqa: F401  # re-exported for convenience
from . import state  # noqa: F401  # re-exported for convenience
from . import visualization  # noqa: F401  # re-exported for convenience

__all__ = ["aggregation", "budgets", "csv_codec", "filters", "rollover", "state", "visualization"]
