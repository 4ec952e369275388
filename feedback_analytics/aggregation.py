"""Aggregation primitives shared by the risk engine and the segmentation classifier.

All functions are pure: they never mutate or reorder the records they are given.
"""
from collections import Counter, defaultdict
from datetime import datetime, UTC
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from pydantic import ValidationError

from errors import InvalidWindow
from schemas import (
    CategoryCount,
    FeedbackRecord,
    Sentiment,
    SourceCount,
    Urgency,
)

SECONDS_PER_DAY = 24 * 60 * 60


def as_window(window: Any) -> List[FeedbackRecord]:
    """Validate a feedback window and return it as a list of records.

    Plain mappings are converted to FeedbackRecord; anything else that is not
    already a record is rejected.

    Raises:
        InvalidWindow: If the window is not a list/tuple or holds bad items
    """
    if not isinstance(window, (list, tuple)):
        raise InvalidWindow(
            f"Feedback window must be a list, got {type(window).__name__}"
        )

    records = []
    for position, item in enumerate(window):
        if isinstance(item, FeedbackRecord):
            records.append(item)
        elif isinstance(item, Mapping):
            try:
                records.append(FeedbackRecord.model_validate(item))
            except ValidationError as e:
                raise InvalidWindow(f"Invalid feedback record at position {position}: {e}") from e
        else:
            raise InvalidWindow(
                f"Invalid feedback record at position {position}: {type(item).__name__}"
            )
    return records


def as_utc(moment: Optional[datetime]) -> datetime:
    """Reference time for an analysis; naive values are taken as UTC."""
    if moment is None:
        return datetime.now(UTC)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment

SENTIMENT_VALUES = {
    Sentiment.POSITIVE: 1,
    Sentiment.NEGATIVE: -1,
    Sentiment.NEUTRAL: 0,
    Sentiment.MIXED: 0,
}


def sentiment_value(sentiment: Sentiment) -> int:
    """Map a sentiment label onto the bipolar scale (+1, 0, -1)."""
    return SENTIMENT_VALUES.get(sentiment, 0)


def average_sentiment(records: Sequence[FeedbackRecord]) -> float:
    """Bipolar sentiment average; 0 for an empty window."""
    if not records:
        return 0.0
    return sum(sentiment_value(r.sentiment) for r in records) / len(records)


def ratio(part: int, total: int) -> float:
    """part / total, or 0 when total is 0."""
    if total <= 0:
        return 0.0
    return part / total


def top_categories(records: Iterable[FeedbackRecord], limit: int = 5) -> List[CategoryCount]:
    counts = Counter(category for r in records for category in r.categories)
    return [
        CategoryCount(category=category, count=count)
        for category, count in counts.most_common(limit)
    ]


def top_sources(records: Iterable[FeedbackRecord], limit: int = 3) -> List[SourceCount]:
    counts = Counter(r.source for r in records)
    return [
        SourceCount(source=source, count=count)
        for source, count in counts.most_common(limit)
    ]


def urgency_distribution(records: Iterable[FeedbackRecord]) -> Dict[str, int]:
    """Count items per urgency value, with every urgency present."""
    distribution = {urgency.value: 0 for urgency in Urgency}
    for r in records:
        distribution[Urgency(r.urgency).value] += 1
    return distribution


def group_by_customer(
    records: Iterable[FeedbackRecord]
) -> Dict[Optional[str], List[FeedbackRecord]]:
    """Group records by customer email. Records without an email share the None key."""
    groups: Dict[Optional[str], List[FeedbackRecord]] = defaultdict(list)
    for r in records:
        groups[r.customer_email].append(r)
    return dict(groups)


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring match against any keyword."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def age_in_days(record: FeedbackRecord, now: datetime) -> float:
    return (now - record.created_at).total_seconds() / SECONDS_PER_DAY


def chronological(records: Iterable[FeedbackRecord]) -> List[FeedbackRecord]:
    """Oldest-first copy of the records."""
    return sorted(records, key=lambda r: r.created_at)


def find_gaps(records: Iterable[FeedbackRecord]) -> List[float]:
    """Days between each pair of consecutive items, in chronological order."""
    ordered = chronological(records)
    return [
        (later.created_at - earlier.created_at).total_seconds() / SECONDS_PER_DAY
        for earlier, later in zip(ordered, ordered[1:])
    ]


def split_into_time_buckets(
    records: Iterable[FeedbackRecord],
    bucket_count: int
) -> List[List[FeedbackRecord]]:
    """Split records into equal-width time buckets spanning earliest to latest item.

    Buckets are half-open [start, end). Items at the latest timestamp close
    the window and land in no bucket, so an empty final bucket means nothing
    arrived in the last stretch before the newest item. A window with no
    span to split (empty, or a single timestamp) yields no buckets.
    """
    ordered = chronological(records)
    if not ordered or bucket_count < 1:
        return []

    start = ordered[0].created_at
    span = (ordered[-1].created_at - start).total_seconds()
    if span <= 0:
        return []

    width = span / bucket_count
    buckets: List[List[FeedbackRecord]] = [[] for _ in range(bucket_count)]
    for r in ordered:
        offset = (r.created_at - start).total_seconds()
        if offset >= span:
            continue
        buckets[min(int(offset // width), bucket_count - 1)].append(r)
    return buckets
