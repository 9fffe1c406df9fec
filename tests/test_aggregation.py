"""
Tests for the aggregation engine and period arithmetic.

All functions under test are pure, so tests build records in memory and
call them directly. No store is involved.
"""

import random
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from vault.aggregation import (
    UNCATEGORIZED_LABEL,
    InvalidWindowError,
    build_series,
    compute_category_breakdown,
    compute_monthly_overview,
    compute_period_over_period_delta,
    compute_period_totals,
    label_category_breakdown,
    period_bounds,
    period_label,
    period_start,
    recent_transactions,
    split_fixed_variable,
    step_period,
)
from vault.models.records import Category, Income, Transaction
from vault.models.results import DiagnosticKind, PeriodKind


USER = uuid4()
GROCERIES = uuid4()
RENT = uuid4()

JAN_START = datetime(2024, 1, 1)
JAN_END = datetime(2024, 1, 31, 23, 59, 59, 999999)


def expense(amount, when, category_id=GROCERIES, **kwargs) -> Transaction:
    return Transaction(
        user_id=USER,
        category_id=category_id,
        amount=Decimal(str(amount)),
        occurred_at=when,
        **kwargs,
    )


def income(amount, when) -> Income:
    return Income(user_id=USER, amount=Decimal(str(amount)), occurred_at=when)


class TestPeriods:
    """Tests for calendar period arithmetic."""

    def test_month_bounds_cover_whole_month(self):
        """Test that a month runs from its first instant to its last microsecond."""
        start, end = period_bounds(datetime(2024, 2, 14, 9, 30), PeriodKind.MONTH)
        assert start == datetime(2024, 2, 1)
        assert end == datetime(2024, 2, 29, 23, 59, 59, 999999)

    def test_year_bounds(self):
        start, end = period_bounds(datetime(2023, 7, 4), PeriodKind.YEAR)
        assert start == datetime(2023, 1, 1)
        assert end == datetime(2023, 12, 31, 23, 59, 59, 999999)

    def test_step_from_month_end_lands_on_next_month(self):
        """Test that stepping from Jan 31 lands on Feb 1, not in March."""
        assert step_period(datetime(2024, 1, 31), PeriodKind.MONTH) == datetime(2024, 2, 1)

    def test_step_backwards_across_year(self):
        assert step_period(datetime(2024, 1, 15), PeriodKind.MONTH, -1) == datetime(2023, 12, 1)
        assert step_period(datetime(2024, 3, 15), PeriodKind.MONTH, -14) == datetime(2023, 1, 1)

    def test_year_stepping(self):
        assert step_period(datetime(2024, 2, 29), PeriodKind.YEAR, 1) == datetime(2025, 1, 1)
        assert step_period(datetime(2024, 6, 1), PeriodKind.YEAR, -3) == datetime(2021, 1, 1)

    def test_timezone_is_preserved(self):
        moment = datetime(2024, 5, 20, 12, tzinfo=timezone.utc)
        assert period_start(moment, PeriodKind.MONTH).tzinfo is timezone.utc

    def test_labels(self):
        assert period_label(datetime(2024, 1, 1), PeriodKind.MONTH) == "Jan 2024"
        assert period_label(datetime(2024, 1, 1), PeriodKind.YEAR) == "2024"


class TestPeriodTotals:
    """Tests for compute_period_totals."""

    def test_empty_input_yields_zero_totals(self):
        """Test that no records means zeros, not an error."""
        totals = compute_period_totals([], [], JAN_START, JAN_END)
        assert totals.total_income == 0
        assert totals.total_expenses == 0
        assert totals.net_savings == 0
        assert totals.diagnostics.is_clean

    def test_sum_is_independent_of_order(self):
        """Test that in-window totals equal the plain sum in any order."""
        amounts = ["12.50", "3.99", "100", "0.01", "47.25"]
        transactions = [
            expense(amount, datetime(2024, 1, day + 1))
            for day, amount in enumerate(amounts)
        ]
        expected = sum((Decimal(a) for a in amounts), Decimal("0"))

        shuffled = list(transactions)
        random.Random(7).shuffle(shuffled)

        assert compute_period_totals(transactions, [], JAN_START, JAN_END).total_expenses == expected
        assert compute_period_totals(shuffled, [], JAN_START, JAN_END).total_expenses == expected

    def test_window_is_inclusive_on_both_ends(self):
        transactions = [
            expense(10, JAN_START),
            expense(20, JAN_END),
            expense(40, datetime(2024, 2, 1)),
            expense(80, datetime(2023, 12, 31, 23, 59, 59, 999999)),
        ]
        totals = compute_period_totals(transactions, [], JAN_START, JAN_END)
        assert totals.total_expenses == Decimal("30")

    def test_net_savings(self):
        totals = compute_period_totals(
            [expense(250, datetime(2024, 1, 5))],
            [income(1000, datetime(2024, 1, 1)), income(200, datetime(2024, 1, 20))],
            JAN_START,
            JAN_END,
        )
        assert totals.total_income == Decimal("1200")
        assert totals.net_savings == Decimal("950")

    def test_inverted_window_raises(self):
        with pytest.raises(InvalidWindowError):
            compute_period_totals([], [], JAN_END, JAN_START)

    def test_malformed_records_are_skipped_and_reported(self):
        """Test that bad records are excluded from sums and reported."""
        good = expense(10, datetime(2024, 1, 2))
        undated = expense(20, None)
        negative = expense(-5, datetime(2024, 1, 3))
        not_a_number = Transaction.model_construct(
            id=uuid4(),
            user_id=USER,
            category_id=GROCERIES,
            amount=Decimal("NaN"),
            occurred_at=datetime(2024, 1, 4),
            is_fixed=False,
        )

        totals = compute_period_totals([good, undated, negative, not_a_number], [], JAN_START, JAN_END)

        assert totals.total_expenses == Decimal("10")
        assert totals.diagnostics.malformed_count == 3
        reported = {issue.record_id for issue in totals.diagnostics.issues}
        assert reported == {undated.id, negative.id, not_a_number.id}

    def test_bad_amount_outside_window_is_ignored(self):
        outside = expense(-5, datetime(2023, 6, 1))
        totals = compute_period_totals([outside], [], JAN_START, JAN_END)
        assert totals.diagnostics.is_clean


class TestCategoryBreakdown:
    """Tests for compute_category_breakdown and labeling."""

    def test_sums_per_category_and_omits_empty_ones(self):
        """Test independent per-category sums; out-of-window categories are absent."""
        travel = uuid4()
        transactions = [
            expense(10, datetime(2024, 1, 2), GROCERIES),
            expense("5.50", datetime(2024, 1, 9), GROCERIES),
            expense(900, datetime(2024, 1, 1), RENT),
            expense(300, datetime(2024, 3, 1), travel),
        ]
        breakdown = compute_category_breakdown(transactions, JAN_START, JAN_END)

        assert breakdown.totals == {GROCERIES: Decimal("15.50"), RENT: Decimal("900")}
        assert travel not in breakdown.totals
        assert breakdown.grand_total == Decimal("915.50")

    def test_unknown_category_is_kept_by_id_and_labeled_uncategorized(self):
        orphan_category = uuid4()
        transactions = [
            expense(10, datetime(2024, 1, 2), GROCERIES),
            expense(7, datetime(2024, 1, 3), orphan_category),
        ]
        breakdown = compute_category_breakdown(transactions, JAN_START, JAN_END)
        assert breakdown.totals[orphan_category] == Decimal("7")

        labeled = label_category_breakdown(breakdown, [Category(id=GROCERIES, name="Groceries")])
        assert labeled == {"Groceries": Decimal("10"), UNCATEGORIZED_LABEL: Decimal("7")}

    def test_categories_sharing_a_name_are_pooled_by_label(self):
        market = uuid4()
        transactions = [
            expense(10, datetime(2024, 1, 2), GROCERIES),
            expense(5, datetime(2024, 1, 4), market),
        ]
        breakdown = compute_category_breakdown(transactions, JAN_START, JAN_END)
        categories = [Category(id=GROCERIES, name="Groceries"), Category(id=market, name="Groceries")]

        assert label_category_breakdown(breakdown, categories) == {"Groceries": Decimal("15")}
        assert breakdown.totals == {GROCERIES: Decimal("10"), market: Decimal("5")}


class TestPeriodOverPeriodDelta:
    """Tests for compute_period_over_period_delta."""

    def test_both_zero(self):
        delta = compute_period_over_period_delta(0, 0)
        assert delta.absolute_delta == 0
        assert delta.percent_delta == 0

    def test_from_zero_is_one_hundred_percent(self):
        delta = compute_period_over_period_delta(150, 0)
        assert delta.absolute_delta == 150
        assert delta.percent_delta == 100

    def test_halving(self):
        delta = compute_period_over_period_delta(50, 100)
        assert delta.absolute_delta == -50
        assert delta.percent_delta == -50

    def test_drop_to_negative_from_zero_is_zero_percent(self):
        delta = compute_period_over_period_delta(Decimal("-20"), Decimal("0"))
        assert delta.absolute_delta == Decimal("-20")
        assert delta.percent_delta == 0

    def test_floats_are_converted_exactly(self):
        delta = compute_period_over_period_delta(0.3, 0.1)
        assert delta.absolute_delta == Decimal("0.2")


class TestBuildSeries:
    """Tests for build_series."""

    def test_month_series_steps_safely_from_month_end(self):
        """Test that the period after Jan 31 covers all of February."""
        transactions = [
            expense(1, datetime(2024, 2, 1)),
            expense(2, datetime(2024, 2, 29, 23, 59)),
            expense(4, datetime(2024, 3, 1)),
        ]
        series = build_series(
            transactions, [], [], datetime(2024, 2, 29), PeriodKind.MONTH, 2
        )

        january, february = series.periods
        assert january.period_start == datetime(2024, 1, 1)
        assert february.period_start == datetime(2024, 2, 1)
        assert february.period_end == datetime(2024, 2, 29, 23, 59, 59, 999999)
        assert february.label == "Feb 2024"
        assert february.variable_expenses == Decimal("3")

    def test_anchor_on_month_end_advancing_one_step(self):
        series = build_series([], [], [], datetime(2024, 1, 31), PeriodKind.MONTH, 1)
        nxt = step_period(series.periods[0].period_start, PeriodKind.MONTH)
        assert period_bounds(nxt, PeriodKind.MONTH) == (
            datetime(2024, 2, 1),
            datetime(2024, 2, 29, 23, 59, 59, 999999),
        )

    def test_periods_are_oldest_first_and_split_fixed(self):
        fixed_rent = expense(900, datetime(2024, 3, 1), RENT, is_fixed=True)
        series = build_series(
            [expense(100, datetime(2024, 3, 10))],
            [income(2000, datetime(2024, 3, 1))],
            [fixed_rent],
            datetime(2024, 3, 15),
            PeriodKind.MONTH,
            3,
        )

        assert [p.label for p in series.periods] == ["Jan 2024", "Feb 2024", "Mar 2024"]
        march = series.periods[-1]
        assert march.variable_expenses == Decimal("100")
        assert march.fixed_expenses == Decimal("900")
        assert march.total_expenses == Decimal("1000")
        assert march.net_savings == Decimal("1000")

    def test_year_series(self):
        series = build_series(
            [expense(5, datetime(2022, 12, 31)), expense(7, datetime(2023, 1, 1))],
            [],
            [],
            datetime(2023, 6, 1),
            PeriodKind.YEAR,
            2,
        )
        assert [p.label for p in series.periods] == ["2022", "2023"]
        assert [p.total_expenses for p in series.periods] == [Decimal("5"), Decimal("7")]

    def test_undated_record_reported_once(self):
        undated = expense(5, None)
        series = build_series([undated], [], [], datetime(2024, 3, 1), PeriodKind.MONTH, 4)
        assert series.diagnostics.malformed_count == 1

    def test_zero_periods_rejected(self):
        with pytest.raises(ValueError):
            build_series([], [], [], datetime(2024, 1, 1), PeriodKind.MONTH, 0)


class TestDashboardHelpers:
    """Tests for the fixed/variable split, monthly overview and recent list."""

    def test_fixed_category_makes_expense_fixed(self):
        categories = [
            Category(id=RENT, name="Rent", is_fixed_expense_category=True),
            Category(id=GROCERIES, name="Groceries"),
        ]
        split = split_fixed_variable(
            [
                expense(900, datetime(2024, 1, 1), RENT),
                expense(60, datetime(2024, 1, 2), GROCERIES),
                expense(15, datetime(2024, 1, 3), GROCERIES, is_fixed=True),
                expense(8, datetime(2024, 1, 4), uuid4()),
            ],
            categories,
            JAN_START,
            JAN_END,
        )
        assert split.fixed == Decimal("915")
        assert split.variable == Decimal("68")
        assert split.total == Decimal("983")

    def test_monthly_overview(self):
        categories = [Category(id=RENT, name="Rent", is_fixed_expense_category=True)]
        overview = compute_monthly_overview(
            transactions=[
                expense(100, datetime(2024, 1, 10)),
                expense(50, datetime(2024, 2, 10)),
            ],
            incomes=[income(1000, datetime(2024, 1, 1)), income(1000, datetime(2024, 2, 1))],
            categories=categories,
            reference_date=datetime(2024, 2, 15),
            fixed_expenses=[expense(500, datetime(2024, 2, 1), RENT, is_fixed=True)],
        )

        assert overview.current.total_expenses == Decimal("550")
        assert overview.previous.total_expenses == Decimal("100")
        assert overview.current_split.fixed == Decimal("500")
        assert overview.current_split.variable == Decimal("50")
        assert overview.spending_delta.absolute_delta == Decimal("450")
        assert overview.spending_delta.percent_delta == Decimal("450")
        assert overview.income_delta.percent_delta == 0
        assert overview.savings_delta.absolute_delta == Decimal("-450")

    def test_recent_transactions_newest_first(self):
        older = expense(1, datetime(2024, 1, 1))
        newer = expense(2, datetime(2024, 1, 5))
        newest = expense(3, datetime(2024, 1, 9))
        undated = expense(4, None)

        recent = recent_transactions([older, undated, newest, newer], limit=2)
        assert recent == [newest, newer]

    def test_recent_transactions_since(self):
        december = expense(1, datetime(2023, 12, 30))
        january = expense(2, datetime(2024, 1, 2))
        assert recent_transactions([december, january], since=JAN_START) == [january]
