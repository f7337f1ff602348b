"""Tests for recurring pattern detection."""

import logging
import threading
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from recurra.services.pattern_detection import (
    DetectionCancelled,
    Signature,
    calculate_intervals,
    classify_frequency,
    detect_patterns,
    group_by_signature,
    score_confidence,
    to_historical,
)
from recurra.models.recurring import Frequency
from recurra.models.transaction import Transaction, TransactionType


class TestSignature:
    """Test grouping key normalization."""

    def test_normalizes_description_and_amount(self):
        a = Signature.of("  Netflix Subscription ", Decimal("-15.99"))
        b = Signature.of("netflix subscription", Decimal("15.990"))
        assert a == b
        assert hash(a) == hash(b)

    def test_amount_rounds_to_cents(self):
        assert Signature.of("x", Decimal("9.999")).amount == Decimal("10.00")

    def test_missing_description(self):
        assert Signature.of(None, Decimal("1")).description == "unknown"

    def test_no_collision_on_separator(self):
        """Keys that would collide as concatenated strings stay distinct."""
        assert Signature.of("a_1.00", Decimal("2")) != Signature.of("a", Decimal("1.00"))


class TestGrouping:
    """Test partitioning transactions into series."""

    def test_groups_and_sorts(self, make_transaction):
        records = [
            make_transaction(date(2024, 3, 1)),
            make_transaction(date(2024, 1, 1)),
            make_transaction(date(2024, 2, 1), amount="-9.99", description="Spotify"),
            make_transaction(date(2024, 2, 1)),
        ]
        groups = group_by_signature(records)

        assert len(groups) == 2
        netflix = groups[Signature.of("netflix subscription", Decimal("15.99"))]
        assert [t.date for t in netflix] == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]

    def test_skips_malformed_records_with_warning(self, make_transaction, caplog):
        records = [
            make_transaction(date(2024, 1, 1)),
            make_transaction("not-a-date"),
            make_transaction("2024-02-30"),
            make_transaction(date(2024, 2, 1), amount="abc"),
            make_transaction(date(2024, 3, 1), amount=None),
            make_transaction(date(2024, 4, 1), amount="NaN"),
        ]
        with caplog.at_level(logging.WARNING, logger="recurra.services.pattern_detection"):
            groups = group_by_signature(records)

        assert sum(len(s) for s in groups.values()) == 1
        assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 5

    def test_single_transaction_series_retained(self, make_transaction):
        groups = group_by_signature([make_transaction(date(2024, 1, 1))])
        assert len(groups) == 1

    def test_time_of_day_ignored(self, make_transaction):
        txn = to_historical(make_transaction("2024-01-01T23:59:00Z"))
        assert txn.date == date(2024, 1, 1)

    def test_accepts_orm_rows(self):
        row = Transaction(
            id="t1",
            date=date(2024, 1, 1),
            amount=Decimal("2500.00"),
            description="ACME PAYROLL",
            category="Salary",
            type=TransactionType.income,
        )
        txn = to_historical(row)
        assert txn.type == TransactionType.income
        assert txn.amount == Decimal("2500.00")

    def test_type_derived_from_sign(self, make_transaction):
        txn = to_historical(make_transaction(date(2024, 1, 1), amount="100", type=None))
        assert txn.type == TransactionType.income

    def test_datetime_values(self, make_transaction):
        txn = to_historical(make_transaction(datetime(2024, 5, 6, 13, 30)))
        assert txn.date == date(2024, 5, 6)


class TestIntervals:
    """Test day-gap calculation."""

    def test_gaps(self, make_transaction):
        series = group_by_signature([
            make_transaction(date(2024, 1, 1)),
            make_transaction(date(2024, 2, 1)),
            make_transaction(date(2024, 3, 3)),
        ])
        intervals = calculate_intervals(list(series.values())[0])
        assert intervals == [31, 31]

    def test_single_entry(self, make_transaction):
        series = list(group_by_signature([make_transaction(date(2024, 1, 1))]).values())[0]
        assert calculate_intervals(series) == []


class TestClassifyFrequency:
    """Test mean-gap classification."""

    @pytest.mark.parametrize("intervals,expected", [
        ([30, 31], Frequency.monthly),
        ([28], Frequency.monthly),
        ([31], Frequency.monthly),
        ([91, 89], Frequency.quarterly),
        ([365, 366], Frequency.yearly),
        ([7, 7, 7], Frequency.weekly),
        ([6, 8], Frequency.weekly),
        ([1, 1, 2], Frequency.daily),
    ])
    def test_buckets(self, intervals, expected):
        assert classify_frequency(intervals).frequency == expected

    def test_nominal_intervals(self):
        assert classify_frequency([29, 31]).interval_days == 30
        assert classify_frequency([88]).interval_days == 90
        assert classify_frequency([360]).interval_days == 365

    def test_custom_uses_rounded_mean(self):
        cadence = classify_frequency([14, 14, 15])
        assert cadence.frequency == Frequency.custom
        assert cadence.interval_days == 14

    def test_between_ranges_is_custom(self):
        assert classify_frequency([45, 45]).frequency == Frequency.custom

    def test_empty_defaults_to_monthly(self):
        cadence = classify_frequency([])
        assert cadence.frequency == Frequency.monthly
        assert cadence.interval_days == 30


class TestConfidence:
    """Test confidence scoring."""

    def test_too_few_intervals(self):
        assert score_confidence([], 30) == 0
        assert score_confidence([30], 30) == 0

    def test_perfectly_regular_saturated(self):
        assert score_confidence([7] * 6, 7) == pytest.approx(1.0)

    def test_sample_term_saturates(self):
        assert score_confidence([7] * 12, 7) == pytest.approx(1.0)

    def test_non_increasing_in_deviation(self):
        """More spread gaps never score higher, for the same gap count."""
        scores = [
            score_confidence([30, 30, 30], 30),
            score_confidence([29, 30, 31], 30),
            score_confidence([25, 30, 35], 30),
            score_confidence([10, 30, 50], 30),
            score_confidence([1, 30, 90], 30),
        ]
        assert scores == sorted(scores, reverse=True)

    def test_bounded(self):
        assert 0 <= score_confidence([1, 300, 2], 30) <= 1

    def test_steady_offset_from_nominal_not_penalized(self):
        """Only the spread of the gaps counts, not their distance from the nominal."""
        assert score_confidence([8] * 6, 7) == pytest.approx(1.0)
        assert score_confidence([31, 31], 30) == pytest.approx(0.7 + 0.3 * (2 / 6))

    def test_offset_series_outscores_jittered(self):
        assert score_confidence([2, 2], 1) >= score_confidence([1, 2], 1)
        assert score_confidence([8] * 6, 7) >= score_confidence([6, 8, 7, 6, 8, 7], 7)

    def test_zero_nominal(self):
        assert score_confidence([0, 0, 0], 0) == 0


class TestDetectPatterns:
    """Test the full detection pass."""

    def test_scenario_monthly_netflix(self, make_transaction):
        """Three monthly charges are accepted with the next date predicted."""
        records = [
            make_transaction(date(2024, 1, 1)),
            make_transaction(date(2024, 2, 1)),
            make_transaction(date(2024, 3, 3)),
        ]
        [candidate] = detect_patterns(records)

        assert candidate.frequency == Frequency.monthly
        assert candidate.confidence >= 0.7
        assert candidate.confidence == pytest.approx(0.7 + 0.3 * (2 / 6))
        assert candidate.is_acceptable
        assert candidate.next_date == date(2024, 4, 3)
        assert candidate.name == "Netflix"
        assert candidate.amount == Decimal("15.99")
        assert candidate.sample_count == 3
        assert candidate.last_date == date(2024, 3, 3)

    def test_scenario_irregular_gaps(self, make_transaction):
        """Gaps of 5, 40 and 3 days are not acceptable."""
        start = date(2024, 1, 1)
        records = [
            make_transaction(start),
            make_transaction(start + timedelta(days=5)),
            make_transaction(start + timedelta(days=45)),
            make_transaction(start + timedelta(days=48)),
        ]
        [candidate] = detect_patterns(records)

        assert candidate.confidence < 0.7
        assert not candidate.is_acceptable
        assert detect_patterns(records, include_low_confidence=False) == []

    def test_single_transaction_scores_zero(self, make_transaction):
        [candidate] = detect_patterns([make_transaction(date(2024, 1, 1))])
        assert candidate.confidence == 0
        assert not candidate.is_acceptable

    def test_two_transactions_scores_zero(self, make_transaction):
        records = [make_transaction(date(2024, 1, 1)), make_transaction(date(2024, 2, 1))]
        [candidate] = detect_patterns(records)
        assert candidate.confidence == 0

    def test_two_day_gaps_accepted(self, make_transaction):
        """A steady two-day series classifies as daily with full confidence."""
        records = [make_transaction(date(2024, 1, 1) + timedelta(days=2 * i), description="Parking") for i in range(7)]
        [candidate] = detect_patterns(records)

        assert candidate.frequency == Frequency.daily
        assert candidate.confidence == pytest.approx(1.0)
        assert candidate.is_acceptable

    def test_empty_input(self):
        assert detect_patterns([]) == []

    def test_all_invalid_input(self, make_transaction):
        assert detect_patterns([make_transaction("garbage"), make_transaction("2024-13-01")]) == []

    def test_sorted_by_confidence(self, make_transaction):
        records = [make_transaction(date(2024, 1, 1) + timedelta(weeks=i), description="Gym") for i in range(7)]
        records += [make_transaction(date(2024, 1, 1)), make_transaction(date(2024, 2, 1)), make_transaction(date(2024, 3, 3))]
        records.append(make_transaction(date(2024, 5, 5), description="One off"))

        candidates = detect_patterns(records)
        assert [c.name for c in candidates] == ["Gym Membership", "Netflix", "One Off"]

    def test_custom_threshold(self, make_transaction):
        records = [make_transaction(date(2024, 1, 1)), make_transaction(date(2024, 2, 1)), make_transaction(date(2024, 3, 3))]
        [candidate] = detect_patterns(records, threshold=0.9)
        assert not candidate.is_acceptable

    def test_thread_pool_matches_sequential(self, make_transaction):
        records = []
        for n, name in enumerate(["Spotify", "Hulu", "Water", "Rent"]):
            records += [
                make_transaction(date(2024, 1, 1 + n) + timedelta(days=30 * i), description=name)
                for i in range(5)
            ]
        sequential = detect_patterns(records)
        parallel = detect_patterns(records, max_workers=4)
        assert sorted(sequential, key=lambda c: c.name) == sorted(parallel, key=lambda c: c.name)

    def test_cancelled(self, make_transaction):
        event = threading.Event()
        event.set()
        with pytest.raises(DetectionCancelled):
            detect_patterns([make_transaction(date(2024, 1, 1))], cancel_event=event)

    def test_income_pattern(self, make_transaction):
        records = [
            make_transaction(date(2024, m, 25), amount="3000.00", description="Monthly Salary", type="income")
            for m in range(1, 8)
        ]
        [candidate] = detect_patterns(records)
        assert candidate.representative.type == TransactionType.income
        assert candidate.is_acceptable
        assert candidate.next_date == date(2024, 8, 25)
