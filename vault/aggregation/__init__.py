"""Monthly and yearly financial aggregation."""

from vault.aggregation.engine import (
    UNCATEGORIZED_LABEL,
    InvalidWindowError,
    build_series,
    compute_category_breakdown,
    compute_monthly_overview,
    compute_period_over_period_delta,
    compute_period_totals,
    label_category_breakdown,
    recent_transactions,
    series_starts,
    split_fixed_variable,
    summarize_period,
)
from vault.aggregation.periods import (
    period_bounds,
    period_label,
    period_start,
    step_period,
)

__all__ = [
    "UNCATEGORIZED_LABEL",
    "InvalidWindowError",
    "build_series",
    "compute_category_breakdown",
    "compute_monthly_overview",
    "compute_period_over_period_delta",
    "compute_period_totals",
    "label_category_breakdown",
    "recent_transactions",
    "series_starts",
    "split_fixed_variable",
    "summarize_period",
    "period_bounds",
    "period_label",
    "period_start",
    "step_period",
]
