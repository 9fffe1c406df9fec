"""
Aggregation Engine

DESIGN DECISION: Aggregation is a set of PURE functions.
Callers fetch fully materialized records from the store first, then hand
them over here. Nothing in this module performs I/O, caches, or mutates
its inputs, so every result can be recomputed from the same inputs.

GUARANTEES:
- Windows are inclusive on both ends
- Empty input yields zero totals, never an error
- Malformed records (missing timestamp, non-finite or negative amount)
  are skipped and reported in the result's diagnostics
- An inverted window is a programmer error and raises immediately
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union
from uuid import UUID

from vault.aggregation.periods import (
    period_bounds,
    period_label,
    step_period,
)
from vault.models.records import Category, Income, Transaction
from vault.models.results import (
    ZERO,
    CategoryBreakdown,
    DiagnosticIssue,
    DiagnosticKind,
    Diagnostics,
    FixedVariableSplit,
    MonthlyOverview,
    PeriodDelta,
    PeriodKind,
    PeriodSeries,
    PeriodSummary,
    PeriodTotals,
)


UNCATEGORIZED_LABEL = "Uncategorized"

HUNDRED = Decimal("100")

Amount = Union[Decimal, int, float]


class InvalidWindowError(ValueError):
    """Raised when a window's start lies after its end."""

    def __init__(self, period_start: datetime, period_end: datetime):
        super().__init__(
            f"Invalid window: start {period_start.isoformat()} "
            f"is after end {period_end.isoformat()}"
        )
        self.period_start = period_start
        self.period_end = period_end


# =============================================================================
# RECORD FILTERING
# =============================================================================

def _check_window(period_start: datetime, period_end: datetime) -> None:
    if period_start > period_end:
        raise InvalidWindowError(period_start, period_end)


def _record_type(record: Union[Transaction, Income]) -> str:
    if isinstance(record, Income):
        return "income"
    return "fixed_expense" if record.is_fixed else "transaction"


def _malformed(record, reason: str) -> DiagnosticIssue:
    return DiagnosticIssue(
        kind=DiagnosticKind.MALFORMED_RECORD,
        record_type=_record_type(record),
        record_id=record.id,
        message=reason,
    )


def _in_window(
    records: Iterable[Union[Transaction, Income]],
    period_start: datetime,
    period_end: datetime,
    issues: list[DiagnosticIssue],
) -> list:
    """
    Well-formed records inside the window.

    Problems with in-window (or undatable) records are appended to `issues`.
    A bad amount on a record outside the window is irrelevant and ignored.
    """
    selected = []
    for record in records:
        if record.occurred_at is None:
            issues.append(_malformed(record, "missing timestamp"))
            continue
        try:
            inside = period_start <= record.occurred_at <= period_end
        except TypeError:
            issues.append(_malformed(record, "timestamp not comparable to window"))
            continue
        if not inside:
            continue

        amount = record.amount
        if not isinstance(amount, Decimal) or not amount.is_finite():
            issues.append(_malformed(record, "non-finite amount"))
            continue
        if amount < 0:
            issues.append(_malformed(record, "negative amount"))
            continue
        selected.append(record)
    return selected


def _sum(records: Iterable[Union[Transaction, Income]]) -> Decimal:
    return sum((record.amount for record in records), ZERO)


def _to_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _diagnostics(issues: list[DiagnosticIssue]) -> Diagnostics:
    # The same undatable record may be seen by several windows
    return Diagnostics(issues=issues).merged()


# =============================================================================
# PERIOD TOTALS
# =============================================================================

def compute_period_totals(
    transactions: Sequence[Transaction],
    incomes: Sequence[Income],
    period_start: datetime,
    period_end: datetime,
) -> PeriodTotals:
    """
    Sum income and expenses inside `[period_start, period_end]`.

    Raises:
        InvalidWindowError: If period_start > period_end
    """
    _check_window(period_start, period_end)
    issues: list[DiagnosticIssue] = []

    total_income = _sum(_in_window(incomes, period_start, period_end, issues))
    total_expenses = _sum(_in_window(transactions, period_start, period_end, issues))

    return PeriodTotals(
        total_income=total_income,
        total_expenses=total_expenses,
        net_savings=total_income - total_expenses,
        diagnostics=_diagnostics(issues),
    )


def compute_category_breakdown(
    transactions: Sequence[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> CategoryBreakdown:
    """
    Sum in-window expenses per category id.

    Categories without in-window expenses are absent from the result.
    The category id is used as-is, whether or not a Category record exists
    for it; see `label_category_breakdown` for display names.
    """
    _check_window(period_start, period_end)
    issues: list[DiagnosticIssue] = []

    totals: dict[UUID, Decimal] = {}
    for transaction in _in_window(transactions, period_start, period_end, issues):
        totals[transaction.category_id] = (
            totals.get(transaction.category_id, ZERO) + transaction.amount
        )

    return CategoryBreakdown(totals=totals, diagnostics=_diagnostics(issues))


def compute_period_over_period_delta(current: Amount, previous: Amount) -> PeriodDelta:
    """
    Change from the previous period to the current one.

    A change from zero is reported as a 100% increase when the current value
    is positive and 0% otherwise, never as infinite or undefined.
    """
    current = _to_decimal(current)
    previous = _to_decimal(previous)
    absolute_delta = current - previous

    if previous == 0:
        percent_delta = HUNDRED if current > 0 else ZERO
    else:
        percent_delta = (absolute_delta / previous) * HUNDRED

    return PeriodDelta(absolute_delta=absolute_delta, percent_delta=percent_delta)


# =============================================================================
# SERIES
# =============================================================================

def summarize_period(
    transactions: Sequence[Transaction],
    incomes: Sequence[Income],
    fixed_expenses: Sequence[Transaction],
    start: datetime,
    period_kind: PeriodKind,
) -> tuple[PeriodSummary, Diagnostics]:
    """Summary of the single period containing `start`."""
    window_start, window_end = period_bounds(start, period_kind)
    issues: list[DiagnosticIssue] = []

    income = _sum(_in_window(incomes, window_start, window_end, issues))
    variable = _sum(_in_window(transactions, window_start, window_end, issues))
    fixed = _sum(_in_window(fixed_expenses, window_start, window_end, issues))
    total_expenses = variable + fixed

    summary = PeriodSummary(
        label=period_label(window_start, period_kind),
        period_start=window_start,
        period_end=window_end,
        income=income,
        variable_expenses=variable,
        fixed_expenses=fixed,
        total_expenses=total_expenses,
        net_savings=income - total_expenses,
    )
    return summary, _diagnostics(issues)


def series_starts(
    anchor_date: datetime,
    period_kind: PeriodKind,
    period_count: int,
) -> list[datetime]:
    """Start instants of `period_count` periods ending with the anchor's, oldest first."""
    if period_count < 1:
        raise ValueError(f"period_count must be at least 1, got {period_count}")
    first = step_period(anchor_date, period_kind, -(period_count - 1))
    return [step_period(first, period_kind, i) for i in range(period_count)]


def build_series(
    transactions: Sequence[Transaction],
    incomes: Sequence[Income],
    fixed_expenses: Sequence[Transaction],
    anchor_date: datetime,
    period_kind: PeriodKind,
    period_count: int,
) -> PeriodSeries:
    """
    Consecutive period summaries ending with the period containing `anchor_date`.

    `transactions` are the variable expenses; `fixed_expenses` are added to
    them for each period's total.

    Raises:
        ValueError: If period_count < 1
    """
    periods = []
    diagnostics = []
    for start in series_starts(anchor_date, period_kind, period_count):
        summary, period_diagnostics = summarize_period(
            transactions, incomes, fixed_expenses, start, period_kind
        )
        periods.append(summary)
        diagnostics.append(period_diagnostics)

    return PeriodSeries(
        period_kind=period_kind,
        periods=periods,
        diagnostics=Diagnostics().merged(*diagnostics),
    )


# =============================================================================
# DASHBOARD HELPERS
# =============================================================================

def _category_index(categories: Iterable[Category]) -> dict[UUID, Category]:
    return {category.id: category for category in categories}


def split_fixed_variable(
    transactions: Sequence[Transaction],
    categories: Iterable[Category],
    period_start: datetime,
    period_end: datetime,
) -> FixedVariableSplit:
    """
    Split in-window spending into fixed and variable costs.

    A transaction counts as fixed when it is flagged as fixed itself or when
    its category is a fixed-expense category. Unknown categories are variable.
    """
    _check_window(period_start, period_end)
    index = _category_index(categories)
    issues: list[DiagnosticIssue] = []

    fixed = ZERO
    variable = ZERO
    for transaction in _in_window(transactions, period_start, period_end, issues):
        category = index.get(transaction.category_id)
        if transaction.is_fixed or (category and category.is_fixed_expense_category):
            fixed += transaction.amount
        else:
            variable += transaction.amount

    return FixedVariableSplit(fixed=fixed, variable=variable, diagnostics=_diagnostics(issues))


def compute_monthly_overview(
    transactions: Sequence[Transaction],
    incomes: Sequence[Income],
    categories: Iterable[Category],
    reference_date: datetime,
    fixed_expenses: Sequence[Transaction] = (),
) -> MonthlyOverview:
    """
    The dashboard's month-over-month summary for the month of `reference_date`.

    Fixed expenses kept in their own collection are counted both in the
    totals and on the fixed side of the split.
    """
    categories = list(categories)
    expenses = list(transactions) + list(fixed_expenses)

    current_start, current_end = period_bounds(reference_date, PeriodKind.MONTH)
    previous_start, previous_end = period_bounds(
        step_period(reference_date, PeriodKind.MONTH, -1), PeriodKind.MONTH
    )

    current = compute_period_totals(expenses, incomes, current_start, current_end)
    previous = compute_period_totals(expenses, incomes, previous_start, previous_end)
    current_split = split_fixed_variable(expenses, categories, current_start, current_end)
    previous_split = split_fixed_variable(expenses, categories, previous_start, previous_end)

    return MonthlyOverview(
        current=current,
        previous=previous,
        current_split=current_split,
        previous_split=previous_split,
        spending_delta=compute_period_over_period_delta(
            current.total_expenses, previous.total_expenses
        ),
        income_delta=compute_period_over_period_delta(
            current.total_income, previous.total_income
        ),
        savings_delta=compute_period_over_period_delta(
            current.net_savings, previous.net_savings
        ),
        diagnostics=current.diagnostics.merged(previous.diagnostics),
    )


def recent_transactions(
    transactions: Sequence[Transaction],
    limit: int = 5,
    since: Optional[datetime] = None,
) -> list[Transaction]:
    """Newest dated transactions first, at most `limit` of them."""
    dated = [
        t for t in transactions
        if t.occurred_at is not None and (since is None or t.occurred_at >= since)
    ]
    dated.sort(key=lambda t: t.occurred_at, reverse=True)
    return dated[:limit]


def label_category_breakdown(
    breakdown: CategoryBreakdown,
    categories: Iterable[Category],
) -> dict[str, Decimal]:
    """
    Category breakdown keyed by display name.

    Ids with no matching Category are pooled under "Uncategorized". Distinct
    categories sharing a name are pooled under that name too; use
    `breakdown.totals` where they must stay apart.
    """
    index = _category_index(categories)
    labeled: dict[str, Decimal] = {}
    for category_id, amount in breakdown.totals.items():
        category = index.get(category_id)
        name = category.name if category else UNCATEGORIZED_LABEL
        labeled[name] = labeled.get(name, ZERO) + amount
    return labeled
