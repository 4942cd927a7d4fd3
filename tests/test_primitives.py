"""
Temporal context, aggregation and ranking primitives.
"""
from datetime import date, datetime
from decimal import Decimal

from circulation_service.aggregates import (
    LoanStatus,
    PatronBucket,
    average,
    conditional_sum,
    count_by,
    count_distinct,
    group_by,
    is_late_return,
    is_overdue,
    loan_duration_days,
    loan_status,
    patron_bucket,
    rounded_average,
    sum_amount,
)
from circulation_service.ranking import partition_rank, rank_desc, running_total
from circulation_service.snapshot import FineRecord, LoanRecord
from circulation_service.temporal import (
    FixedClock,
    SystemClock,
    TemporalContext,
    clock_from_config,
)

from conftest import TODAY, days_ago


# ══════════════════════════════════════════════════════════════
# TEMPORAL CONTEXT
# ══════════════════════════════════════════════════════════════

class TestTemporalContext:
    def test_trailing_windows(self):
        ctx = TemporalContext(date(2024, 3, 10))
        assert ctx.last_7 == date(2024, 3, 3)
        assert ctx.last_30 == date(2024, 2, 9)
        assert ctx.last_90 == date(2023, 12, 11)

    def test_of_datetime_drops_time(self):
        ctx = TemporalContext.of(datetime(2024, 3, 10, 23, 59))
        assert ctx.today == date(2024, 3, 10)

    def test_fixed_clock(self):
        assert FixedClock(date(2020, 1, 2)).today() == date(2020, 1, 2)

    def test_clock_from_config(self):
        assert isinstance(clock_from_config({"REFERENCE_DATE": None}), SystemClock)
        pinned = clock_from_config({"REFERENCE_DATE": "2024-06-15"})
        assert pinned.today() == date(2024, 6, 15)


# ══════════════════════════════════════════════════════════════
# AGGREGATION
# ══════════════════════════════════════════════════════════════

class TestAggregation:
    def test_count_distinct(self):
        assert count_distinct([], lambda x: x) == 0
        assert count_distinct([1, 2, 2, 3], lambda x: x) == 3

    def test_conditional_sum(self):
        assert conditional_sum([], bool) == 0
        assert conditional_sum([0, 1, 2, 0], bool) == 2

    def test_average_of_nothing_is_absent(self):
        assert average([]) is None
        assert average([None, None]) is None

    def test_average_ignores_missing(self):
        assert average([2, None, 4]) == 3

    def test_sum_amount(self):
        fines = [FineRecord(1, 1, Decimal("10.00"), "Unpaid"), FineRecord(2, 1, Decimal("5.50"), "Paid")]
        assert sum_amount(fines) == Decimal("15.50")
        assert sum_amount(fines, lambda f: f.status == "Unpaid") == Decimal("10.00")
        assert sum_amount([]) == 0

    def test_sum_amount_is_exact(self):
        dimes = [FineRecord(i, 1, Decimal("0.10"), "Unpaid") for i in range(100)]
        assert sum_amount(dimes) == Decimal("10")

    def test_rounded_average_rounds_half_up(self):
        assert rounded_average([1] * 7 + [2]) == Decimal("1.13")
        assert rounded_average([1, 2, 1]) == Decimal("1.33")
        assert rounded_average([3, None, 4]) == Decimal("3.50")

    def test_rounded_average_of_nothing_is_absent(self):
        assert rounded_average([]) is None
        assert rounded_average([None]) is None

    def test_group_by_keeps_first_appearance_order(self):
        groups = group_by(["b1", "a1", "b2"], lambda s: s[0])
        assert list(groups) == ["b", "a"]
        assert groups["b"] == ["b1", "b2"]

    def test_count_by_fills_empty_buckets(self):
        counts = count_by(["x"], lambda s: s, buckets=["x", "y"])
        assert counts == {"x": 1, "y": 0}

    def test_patron_bucket(self):
        assert patron_bucket("Faculty") is PatronBucket.FACULTY
        assert patron_bucket("Visitor") is PatronBucket.OTHER
        assert patron_bucket(None) is PatronBucket.OTHER


class TestLoanFacts:
    def test_duration_uses_calendar_dates(self):
        loan = LoanRecord(1, 1, 1, datetime(2024, 6, 1, 23, 0), datetime(2024, 6, 14), datetime(2024, 6, 3, 1, 0))
        assert loan_duration_days(loan, TODAY) == 2

    def test_duration_of_open_loan_runs_to_today(self):
        loan = LoanRecord(1, 1, 1, days_ago(5), days_ago(-9))
        assert loan_duration_days(loan, TODAY) == 5

    def test_duration_without_loan_date(self):
        loan = LoanRecord(1, 1, 1, None, days_ago(-9))
        assert loan_duration_days(loan, TODAY) is None

    def test_due_today_is_not_overdue(self):
        loan = LoanRecord(1, 1, 1, days_ago(14), days_ago(0))
        assert not is_overdue(loan, TODAY)
        assert loan_status(loan, TODAY) is LoanStatus.CURRENT

    def test_due_yesterday_is_overdue(self):
        loan = LoanRecord(1, 1, 1, days_ago(14), days_ago(1, hour=23))
        assert is_overdue(loan, TODAY)
        assert loan_status(loan, TODAY) is LoanStatus.OVERDUE

    def test_returned_wins_over_due_date(self):
        loan = LoanRecord(1, 1, 1, days_ago(30), days_ago(16), days_ago(2))
        assert loan_status(loan, TODAY) is LoanStatus.RETURNED
        assert is_late_return(loan)

    def test_late_return_mixed_date_types(self):
        loan = LoanRecord(1, 1, 1, date(2024, 1, 1), date(2024, 1, 10), datetime(2024, 1, 10, 9, 0))
        assert is_late_return(loan)


# ══════════════════════════════════════════════════════════════
# RANKING
# ══════════════════════════════════════════════════════════════

class TestRankDesc:
    def test_ties_share_rank_and_skip(self):
        ranked = rank_desc([10, 10, 8], score=lambda x: x)
        assert [r for r, _ in ranked] == [1, 1, 3]

    def test_single(self):
        assert rank_desc([5], score=lambda x: x) == [(1, 5)]

    def test_empty(self):
        assert rank_desc([], score=lambda x: x) == []

    def test_tie_break_orders_but_does_not_rank(self):
        items = [("b", 3), ("a", 3), ("c", 7)]
        ranked = rank_desc(items, score=lambda i: i[1], tie_break=lambda i: i[0])
        assert ranked == [(1, ("c", 7)), (2, ("a", 3)), (2, ("b", 3))]


class TestPartitionRank:
    def test_restarts_per_partition(self):
        items = [("x", 5), ("y", 1), ("x", 9), ("x", 5)]
        ranked = partition_rank(items, partition=lambda i: i[0], score=lambda i: i[1])
        by_partition = {}
        for rank, item in ranked:
            by_partition.setdefault(item[0], []).append((rank, item[1]))
        assert by_partition["x"] == [(1, 9), (2, 5), (2, 5)]
        assert by_partition["y"] == [(1, 1)]

    def test_none_is_its_own_partition(self):
        items = [(None, 1), (1, 4), (None, 3)]
        ranked = partition_rank(items, partition=lambda i: i[0], score=lambda i: i[1])
        assert ranked == [(1, (None, 3)), (2, (None, 1)), (1, (1, 4))]


class TestRunningTotal:
    def test_cumulative_in_key_order(self):
        rows = [("2024-02", 2), ("2024-01", 3), ("2024-03", 1)]
        totals = running_total(rows, order_key=lambda r: r[0], value=lambda r: r[1])
        assert [(r[0], t) for r, t in totals] == [("2024-01", 3), ("2024-02", 5), ("2024-03", 6)]

    def test_repeated_keys_share_inclusive_total(self):
        rows = [(1, 1), (2, 10), (2, 20), (3, 5)]
        totals = running_total(rows, order_key=lambda r: r[0], value=lambda r: r[1])
        assert [t for _, t in totals] == [1, 31, 31, 36]

    def test_empty(self):
        assert running_total([], order_key=lambda r: r, value=lambda r: r) == []
