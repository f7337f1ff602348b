"""
Statistical detection of recurring transactions.

Transactions are grouped by a normalized (description, amount) signature, the
day-gaps inside each group are classified into a cadence and scored for
consistency, and each group becomes a PatternCandidate. Nothing here touches
the database: candidates are only persisted once accepted by the recurring
service.
"""

import logging
import math
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from recurra.config import settings
from recurra.models.recurring import Frequency
from recurra.models.transaction import TransactionType
from recurra.services.naming import generate_pattern_name
from recurra.services.schedule import Cadence, predict_next_date

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# Inclusive mean-gap ranges, checked in order
FREQUENCY_RANGES = [
    (Frequency.monthly, 28, 31),
    (Frequency.quarterly, 84, 93),
    (Frequency.yearly, 350, 370),
    (Frequency.weekly, 6, 8),
    (Frequency.daily, 1, 2),
]

CONSISTENCY_WEIGHT = 0.7
SAMPLE_WEIGHT = 0.3
SATURATING_INTERVAL_COUNT = 6


class DetectionCancelled(Exception):
    """Raised when a detection pass is aborted through its cancel event."""


@dataclass(frozen=True)
class Signature:
    """Grouping key shared by the transactions of one series."""
    description: str
    amount: Decimal

    @classmethod
    def of(cls, description: Optional[str], amount: Decimal) -> "Signature":
        normalized = (description or "").strip().lower() or "unknown"
        return cls(normalized, abs(amount).quantize(CENTS))


@dataclass(frozen=True)
class HistoricalTransaction:
    """Validated view of one input transaction."""
    id: Optional[str]
    date: date
    amount: Decimal
    description: str
    category: Optional[str]
    type: TransactionType

    @property
    def signature(self) -> Signature:
        return Signature.of(self.description, self.amount)


@dataclass(frozen=True)
class PatternCandidate:
    """Result of analysing one series."""
    signature: Signature
    frequency: Frequency
    interval_days: int
    confidence: float
    next_date: date
    representative: HistoricalTransaction
    sample_count: int
    name: str
    is_acceptable: bool

    @property
    def amount(self) -> Decimal:
        return abs(self.representative.amount)

    @property
    def last_date(self) -> date:
        return self.representative.date


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date, dropping any time of day. Returns None on failure."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if len(text) > 10 and text[10] in "T ":
        text = text[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse a finite decimal amount. Returns None on failure."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _parse_type(value: Any, amount: Decimal) -> TransactionType:
    raw = getattr(value, "value", value)
    if raw in (TransactionType.income.value, TransactionType.expense.value):
        return TransactionType(raw)
    return TransactionType.income if amount > 0 else TransactionType.expense


def to_historical(record: Any) -> Optional[HistoricalTransaction]:
    """Normalize a dict, ORM row or object; None if its date or amount is unusable."""
    txn_date = parse_date(_field(record, "date"))
    amount = parse_amount(_field(record, "amount"))
    record_id = _field(record, "id")

    if txn_date is None:
        logger.warning("Skipping transaction %s: unparseable date %r", record_id, _field(record, "date"))
        return None
    if amount is None:
        logger.warning("Skipping transaction %s: non-numeric amount %r", record_id, _field(record, "amount"))
        return None

    description = _field(record, "description")
    category = _field(record, "category")
    return HistoricalTransaction(
        id=str(record_id) if record_id is not None else None,
        date=txn_date,
        amount=amount,
        description=str(description) if description is not None else "",
        category=str(category) if category is not None else None,
        type=_parse_type(_field(record, "type"), amount),
    )


def group_by_signature(records: Iterable[Any]) -> Dict[Signature, List[HistoricalTransaction]]:
    """Partition records into chronologically sorted series by signature."""
    groups: Dict[Signature, List[HistoricalTransaction]] = defaultdict(list)

    for record in records:
        txn = to_historical(record)
        if txn is not None:
            groups[txn.signature].append(txn)

    for series in groups.values():
        series.sort(key=lambda t: t.date)

    return dict(groups)


def calculate_intervals(series: List[HistoricalTransaction]) -> List[int]:
    """Whole-day gaps between consecutive entries of a sorted series."""
    return [
        (current.date - previous.date).days
        for previous, current in zip(series, series[1:])
    ]


def classify_frequency(intervals: List[int]) -> Cadence:
    """Bucket the mean gap into a cadence."""
    if not intervals:
        return Cadence(Frequency.monthly, Frequency.monthly.nominal_days)

    mean = sum(intervals) / len(intervals)
    for frequency, low, high in FREQUENCY_RANGES:
        if low <= mean <= high:
            return Cadence(frequency, frequency.nominal_days)

    return Cadence(Frequency.custom, int(round(mean)))


def score_confidence(intervals: List[int], nominal: float) -> float:
    """
    Score how strongly the gaps support the nominal interval, from 0 to 1.

    The consistency term is 1 minus the population standard deviation of
    the gaps' offsets from the nominal interval, relative to that interval;
    the sample term saturates at six gaps.
    """
    if len(intervals) < 2 or nominal < 1:
        return 0.0

    offsets = [i - nominal for i in intervals]
    mean_offset = sum(offsets) / len(offsets)
    deviation = math.sqrt(sum((o - mean_offset) ** 2 for o in offsets) / len(offsets))
    consistency = max(0.0, 1 - deviation / nominal)
    sample = min(1.0, len(intervals) / SATURATING_INTERVAL_COUNT)

    score = CONSISTENCY_WEIGHT * consistency + SAMPLE_WEIGHT * sample
    return min(1.0, max(0.0, score))


def analyze_series(
    signature: Signature,
    series: List[HistoricalTransaction],
    threshold: float
) -> PatternCandidate:
    """Turn one series into a candidate."""
    intervals = calculate_intervals(series)
    cadence = classify_frequency(intervals)
    confidence = score_confidence(intervals, cadence.interval_days)

    latest = series[-1]
    return PatternCandidate(
        signature=signature,
        frequency=cadence.frequency,
        interval_days=cadence.interval_days,
        confidence=confidence,
        next_date=predict_next_date(latest.date, cadence.frequency, cadence.interval_days),
        representative=latest,
        sample_count=len(series),
        name=generate_pattern_name(latest.description),
        is_acceptable=confidence >= threshold,
    )


def detect_patterns(
    records: Iterable[Any],
    threshold: Optional[float] = None,
    include_low_confidence: bool = True,
    max_workers: int = 1,
    cancel_event: Optional[threading.Event] = None
) -> List[PatternCandidate]:
    """
    Detect recurring patterns in a transaction history.

    Returns one candidate per signature, highest confidence first. With
    include_low_confidence=False only candidates at or above the threshold
    are returned. Setting cancel_event between series raises
    DetectionCancelled.
    """
    if threshold is None:
        threshold = settings.confidence_threshold

    groups = group_by_signature(records)
    if not groups:
        return []

    def analyze(item) -> Optional[PatternCandidate]:
        if cancel_event is not None and cancel_event.is_set():
            return None
        return analyze_series(item[0], item[1], threshold)

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(analyze, groups.items()))
    else:
        results = []
        for item in groups.items():
            if cancel_event is not None and cancel_event.is_set():
                break
            results.append(analyze(item))

    if cancel_event is not None and cancel_event.is_set():
        logger.info("Pattern detection cancelled after %d of %d series", len([r for r in results if r]), len(groups))
        raise DetectionCancelled("Pattern detection was cancelled")

    candidates = [c for c in results if c is not None]
    if not include_low_confidence:
        candidates = [c for c in candidates if c.is_acceptable]

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    logger.info(
        "Detected %d candidate patterns (%d acceptable) from %d series",
        len(candidates), sum(1 for c in candidates if c.is_acceptable), len(groups)
    )
    return candidates
