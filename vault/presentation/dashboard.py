"""
Finance Dashboard

This module ties the record services and the engines together and defines
the flows behind each screen:
1. Dashboard (this month vs last month, what friends owe, recent expenses,
   instalment bills left to pay)
2. Expenses (one month's spending by category)
3. Analytics (income vs spending over several months or years)

DESIGN DECISION: Flows fetch, then compute. All I/O happens up front
through the record services; the fully materialized records are handed to
the pure engines afterwards. Independent fetches run concurrently.

DESIGN DECISION: Analytics summaries are cached per user, period kind and
period start for a short freshness window. An expired entry is recomputed
from freshly fetched records, never patched, and expired entries are
purged every time a series is loaded. The cache belongs to one dashboard
instance; there is no global state.

Storage errors are written to the audit trail, then propagate to the caller.
Skipped records never propagate: they are logged through the audit logger
and returned with the results.
"""

import asyncio
import time
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from vault.aggregation import (
    build_series,
    compute_category_breakdown,
    compute_monthly_overview,
    label_category_breakdown,
    period_bounds,
    recent_transactions,
    series_starts,
    split_fixed_variable,
    step_period,
    summarize_period,
)
from vault.audit import AuditLogger, configure_logging, create_correlation_id
from vault.config import AppSettings, get_settings
from vault.models.records import OutstandingPayment, SplitParticipant, Transaction
from vault.models.results import (
    CategoryBreakdown,
    Diagnostics,
    FixedVariableSplit,
    MonthlyOverview,
    PeriodKind,
    PeriodSeries,
    PeriodSummary,
    SettlementSummary,
)
from vault.services.records import (
    CategoryService,
    ExpenseService,
    FixedExpenseService,
    IncomeService,
    OutstandingPaymentService,
    SplitExpenseService,
    SplitParticipantService,
)
from vault.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    RecordStoreInterface,
    StorageError,
)
from vault.settlement import compute_settlement, group_participants, unpaid_participants


logger = structlog.get_logger("vault.presentation")


# =============================================================================
# VIEW MODELS
# =============================================================================

class DashboardView(BaseModel):
    """Everything the dashboard screen shows."""

    reference_date: datetime
    overview: MonthlyOverview
    settlement: SettlementSummary
    unpaid_by_expense: dict[UUID, list[SplitParticipant]] = Field(
        default_factory=dict,
        description="Unpaid shares of the split expenses the user created"
    )
    recent: list[Transaction] = Field(default_factory=list)
    outstanding_total: Decimal = Decimal("0")
    overdue_payments: list[OutstandingPayment] = Field(default_factory=list)
    upcoming_payments: list[OutstandingPayment] = Field(default_factory=list)
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


class ExpensesView(BaseModel):
    """One month of spending, grouped by category."""

    period_start: datetime
    period_end: datetime
    transactions: list[Transaction] = Field(
        default_factory=list,
        description="In-month expenses, newest first"
    )
    breakdown: CategoryBreakdown
    labeled_breakdown: dict[str, Decimal] = Field(default_factory=dict)
    split: FixedVariableSplit
    outstanding_payments: list[OutstandingPayment] = Field(
        default_factory=list,
        description="Unpaid instalment bills, soonest due first"
    )
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


# =============================================================================
# DASHBOARD
# =============================================================================

class FinanceDashboard:
    """
    Screen-level flows over one record store.

    Args:
        store: Record store to read from
        settings: Application settings (defaults to the environment's)
        audit_logger: Where diagnostics go (defaults to local-only logging)
        clock: Monotonic seconds, used for cache freshness
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._settings = settings or get_settings().app
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock or time.monotonic

        self.expenses = ExpenseService(store, self._audit_logger)
        self.fixed_expenses = FixedExpenseService(store, self._audit_logger)
        self.incomes = IncomeService(store, self._audit_logger)
        self.categories = CategoryService(store, self._audit_logger)
        self.split_expenses = SplitExpenseService(store, self._audit_logger)
        self.participants = SplitParticipantService(store, self._audit_logger)
        self.outstanding = OutstandingPaymentService(store, self._audit_logger)

        # (user, kind, period start) -> (summary, diagnostics, computed at)
        self._series_cache: dict[
            tuple[UUID, PeriodKind, datetime],
            tuple[PeriodSummary, Diagnostics, float],
        ] = {}

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    async def load_dashboard(
        self,
        user_id: UUID,
        reference_date: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> DashboardView:
        """
        Load the dashboard for the month containing `reference_date`.

        Covers that month and the one before it.
        """
        correlation_id = correlation_id or create_correlation_id()

        window_start, _ = period_bounds(
            step_period(reference_date, PeriodKind.MONTH, -1), PeriodKind.MONTH
        )
        _, window_end = period_bounds(reference_date, PeriodKind.MONTH)

        (
            (expenses, expenses_diag),
            (fixed, fixed_diag),
            (incomes, incomes_diag),
            (categories, categories_diag),
            (splits, rows, splits_diag),
            (payments, payments_diag),
        ) = await self._gather(
            "load_dashboard",
            correlation_id,
            self.expenses.in_range(user_id, window_start, window_end),
            self.fixed_expenses.in_range(user_id, window_start, window_end),
            self.incomes.in_range(user_id, window_start, window_end),
            self.categories.list_all(),
            self.split_expenses.visible_to(user_id, self.participants),
            self.outstanding.open_for_user(user_id),
        )

        overview = compute_monthly_overview(
            expenses, incomes, categories, reference_date, fixed_expenses=fixed
        )
        participants_by_expense = group_participants(rows)
        settlement = compute_settlement(user_id, splits, participants_by_expense)

        unpaid_by_expense = {}
        for expense in splits:
            if expense.creator_id != user_id:
                continue
            unpaid = unpaid_participants(expense.id, participants_by_expense.get(expense.id, []))
            if unpaid:
                unpaid_by_expense[expense.id] = list(unpaid)

        current_start, _ = period_bounds(reference_date, PeriodKind.MONTH)
        recent = recent_transactions(
            expenses,
            limit=self._settings.recent_transactions_limit,
            since=current_start,
        )

        today = reference_date.date()
        payments.sort(key=_due_order)
        overdue = [p for p in payments if p.is_overdue_on(today)]
        upcoming = [
            p for p in payments
            if p.is_due_within(today, self._settings.upcoming_payment_days)
        ]

        diagnostics = Diagnostics().merged(
            expenses_diag,
            fixed_diag,
            incomes_diag,
            categories_diag,
            splits_diag,
            payments_diag,
            overview.diagnostics,
            settlement.diagnostics,
        )
        await self._audit_logger.log_diagnostics("dashboard", diagnostics, correlation_id)

        return DashboardView(
            reference_date=reference_date,
            overview=overview,
            settlement=settlement,
            unpaid_by_expense=unpaid_by_expense,
            recent=recent,
            outstanding_total=sum((p.remaining_amount for p in payments), Decimal("0")),
            overdue_payments=overdue,
            upcoming_payments=upcoming,
            diagnostics=diagnostics,
        )

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def load_expenses(
        self,
        user_id: UUID,
        reference_date: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> ExpensesView:
        """Load the expenses screen for the month containing `reference_date`."""
        correlation_id = correlation_id or create_correlation_id()
        start, end = period_bounds(reference_date, PeriodKind.MONTH)

        (
            (expenses, expenses_diag),
            (categories, categories_diag),
            (payments, payments_diag),
        ) = await self._gather(
            "load_expenses",
            correlation_id,
            self.expenses.in_range(user_id, start, end),
            self.categories.list_all(),
            self.outstanding.open_for_user(user_id),
        )

        breakdown = compute_category_breakdown(expenses, start, end)
        split = split_fixed_variable(expenses, categories, start, end)
        in_month = recent_transactions(expenses, limit=len(expenses), since=start)

        diagnostics = Diagnostics().merged(
            expenses_diag,
            categories_diag,
            payments_diag,
            breakdown.diagnostics,
            split.diagnostics,
        )
        await self._audit_logger.log_diagnostics("expenses", diagnostics, correlation_id)

        return ExpensesView(
            period_start=start,
            period_end=end,
            transactions=in_month,
            breakdown=breakdown,
            labeled_breakdown=label_category_breakdown(breakdown, categories),
            split=split,
            outstanding_payments=sorted(payments, key=_due_order),
            diagnostics=diagnostics,
        )

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    async def load_series(
        self,
        user_id: UUID,
        anchor_date: datetime,
        period_kind: PeriodKind = PeriodKind.MONTH,
        correlation_id: Optional[UUID] = None,
    ) -> PeriodSeries:
        """
        Income vs spending for the display window ending at `anchor_date`.

        Neighbouring periods on each side are computed too, so paging the
        chart by one period is served from the cache.
        """
        correlation_id = correlation_id or create_correlation_id()
        self._purge_expired()

        display = series_starts(anchor_date, period_kind, self._settings.analytics_display_window)
        preload = self._settings.analytics_preload_window
        wanted = series_starts(
            step_period(anchor_date, period_kind, preload),
            period_kind,
            len(display) + 2 * preload,
        )

        # Taken before any await; a concurrent load may purge the shared cache
        summaries = {}
        missing = []
        for start in wanted:
            entry = self._series_cache.get((user_id, period_kind, start))
            if entry is None:
                missing.append(start)
            else:
                summary, period_diagnostics, _ = entry
                summaries[start] = (summary, period_diagnostics)

        fetch_diagnostics = Diagnostics()
        if missing:
            computed, fetch_diagnostics = await self._compute_periods(
                user_id, period_kind, missing, correlation_id
            )
            summaries.update(computed)

        periods = []
        diagnostics = [fetch_diagnostics]
        for start in display:
            summary, period_diagnostics = summaries[start]
            periods.append(summary)
            diagnostics.append(period_diagnostics)

        series = PeriodSeries(
            period_kind=period_kind,
            periods=periods,
            diagnostics=Diagnostics().merged(*diagnostics),
        )

        await self._audit_logger.log_series_computed(
            user_id=user_id,
            period_kind=period_kind.value,
            computed=len(missing),
            cached=len(wanted) - len(missing),
            correlation_id=correlation_id,
        )
        await self._audit_logger.log_diagnostics("series", series.diagnostics, correlation_id)
        return series

    async def build_series(
        self,
        user_id: UUID,
        anchor_date: datetime,
        period_kind: PeriodKind,
        period_count: int,
    ) -> PeriodSeries:
        """Uncached series of any length, straight from the store."""
        first = series_starts(anchor_date, period_kind, period_count)[0]
        start, _ = period_bounds(first, period_kind)
        _, end = period_bounds(anchor_date, period_kind)

        transactions, fixed, incomes, fetch_diagnostics = await self._fetch_window(
            user_id, start, end, create_correlation_id()
        )
        series = build_series(
            transactions, incomes, fixed, anchor_date, period_kind, period_count
        )
        return series.model_copy(update={
            "diagnostics": fetch_diagnostics.merged(series.diagnostics),
        })

    def invalidate(self, user_id: Optional[UUID] = None) -> int:
        """
        Drop cached summaries for one user, or for everyone.

        Call after writing records that change past periods.

        Returns:
            Number of entries dropped
        """
        keys = [
            key for key in self._series_cache
            if user_id is None or key[0] == user_id
        ]
        for key in keys:
            del self._series_cache[key]
        return len(keys)

    @property
    def cached_period_count(self) -> int:
        return len(self._series_cache)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _purge_expired(self) -> None:
        now = self._clock()
        ttl = self._settings.cache_ttl_seconds
        expired = [
            key for key, (_, _, computed_at) in self._series_cache.items()
            if now - computed_at >= ttl
        ]
        for key in expired:
            del self._series_cache[key]
        if expired:
            logger.debug("series_cache_purged", expired=len(expired))

    async def _gather(self, operation: str, correlation_id: UUID, *fetches):
        """Run fetches concurrently. A storage failure is audited, then re-raised."""
        try:
            return await asyncio.gather(*fetches)
        except StorageError as e:
            await self._audit_logger.log_storage_error(operation, str(e), correlation_id)
            raise

    async def _fetch_window(
        self,
        user_id: UUID,
        start: datetime,
        end: datetime,
        correlation_id: UUID,
    ):
        (
            (transactions, transactions_diag),
            (fixed, fixed_diag),
            (incomes, incomes_diag),
        ) = await self._gather(
            "load_series",
            correlation_id,
            self.expenses.in_range(user_id, start, end),
            self.fixed_expenses.in_range(user_id, start, end),
            self.incomes.in_range(user_id, start, end),
        )
        diagnostics = Diagnostics().merged(transactions_diag, fixed_diag, incomes_diag)
        return transactions, fixed, incomes, diagnostics

    async def _compute_periods(
        self,
        user_id: UUID,
        period_kind: PeriodKind,
        starts: list[datetime],
        correlation_id: UUID,
    ) -> tuple[dict[datetime, tuple[PeriodSummary, Diagnostics]], Diagnostics]:
        """
        Fetch once for all `starts` and cache a fresh summary for each.

        Returns:
            (summary and diagnostics by period start, fetch diagnostics)
        """
        window_start, _ = period_bounds(starts[0], period_kind)
        _, window_end = period_bounds(starts[-1], period_kind)

        transactions, fixed, incomes, fetch_diagnostics = await self._fetch_window(
            user_id, window_start, window_end, correlation_id
        )

        computed_at = self._clock()
        computed = {}
        for start in starts:
            summary, diagnostics = summarize_period(
                transactions, incomes, fixed, start, period_kind
            )
            computed[start] = (summary, diagnostics)
            self._series_cache[(user_id, period_kind, start)] = (summary, diagnostics, computed_at)

        return computed, fetch_diagnostics


def _due_order(payment: OutstandingPayment) -> tuple:
    # Undated payments last
    return (payment.due_date is None, payment.due_date or date.min)


def create_dashboard(use_storage: bool = True) -> FinanceDashboard:
    """
    Factory function to create a dashboard with its storage and logging.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Set to False to run against an in-memory store.
    """
    configure_logging(get_settings().app.effective_log_level)

    store: RecordStoreInterface
    if use_storage:
        try:
            store = GoogleSheetsRecordStore(GoogleSheetsClient())
        except Exception as e:
            # Storage not configured - continue with local data only
            logger.warning("storage_not_configured", error=str(e))
            return FinanceDashboard(InMemoryRecordStore(), audit_logger=AuditLogger())
        return FinanceDashboard(store, audit_logger=AuditLogger(store))

    return FinanceDashboard(InMemoryRecordStore(), audit_logger=AuditLogger())
