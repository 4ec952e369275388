"""Rule-based segmentation of a feedback window into named, overlapping cohorts."""
import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from aggregation import (
    as_utc,
    as_window,
    average_sentiment,
    group_by_customer,
    ratio,
    top_categories,
    top_sources,
    urgency_distribution,
)
from errors import SegmentNotFound, UnknownSegmentType
from schemas import (
    CategoryCount,
    FeedbackRecord,
    Segment,
    SegmentAnalytics,
    SegmentComparison,
    SegmentComparisonSummary,
    SegmentInsight,
    SegmentStats,
    SegmentSummary,
    SegmentType,
    SegmentationResult,
    SourceCount,
    Urgency,
)
from segment_catalog import SEGMENT_CATALOG, CriteriaContext, SegmentDefinition

logger = logging.getLogger(__name__)

POSITIVE_SEGMENT_THRESHOLD = 0.3
NEGATIVE_SEGMENT_THRESHOLD = -0.3


class SegmentationClassifier:
    """Evaluates a segment catalog against feedback windows.

    A feedback item may land in any number of segments of the same type, so
    segment counts can add up to more than the window size.
    """

    def __init__(self, catalog: Mapping[SegmentType, Tuple[SegmentDefinition, ...]] = SEGMENT_CATALOG):
        self.catalog = catalog

    def segment_types(self) -> List[SegmentType]:
        return list(self.catalog)

    def definitions_for(self, segment_type: str) -> Tuple[SegmentDefinition, ...]:
        """Catalog entries for a segment type.

        Raises:
            UnknownSegmentType: If the type has no catalog
        """
        try:
            key = SegmentType(segment_type)
        except ValueError:
            raise UnknownSegmentType(str(segment_type)) from None
        if key not in self.catalog:
            raise UnknownSegmentType(key.value)
        return self.catalog[key]

    def classify(
        self,
        window: Sequence[FeedbackRecord],
        segment_type: str,
        now: Optional[datetime] = None
    ) -> List[Segment]:
        """Split a window into the non-empty segments of one type.

        Args:
            window: Feedback records to classify
            segment_type: Catalog to evaluate (persona, lifecycle, ...)
            now: Reference time for recency criteria

        Returns:
            Non-empty segments, largest first (catalog order among equals)

        Raises:
            UnknownSegmentType: If the segment type has no catalog
            InvalidWindow: If the window is malformed
        """
        definitions = self.definitions_for(segment_type)
        records = as_window(window)
        context = build_context(records, as_utc(now))

        segments = []
        for definition in definitions:
            matching = [r for r in records if definition.matches(r, context)]
            if matching:
                segments.append(build_segment(definition, matching, len(records)))

        segments.sort(key=lambda segment: segment.stats.count, reverse=True)

        logger.debug(
            f"Classified {len(records)} items into {len(segments)} {segment_type} segments"
        )
        return segments


def build_context(records: Sequence[FeedbackRecord], now: datetime) -> CriteriaContext:
    groups = group_by_customer(records)
    return CriteriaContext(
        customer_counts={email: len(items) for email, items in groups.items()},
        customer_sentiment={email: average_sentiment(items) for email, items in groups.items()},
        now=now
    )


def build_segment(
    definition: SegmentDefinition,
    matching: List[FeedbackRecord],
    window_size: int
) -> Segment:
    return Segment(
        id=definition.id,
        name=definition.name,
        description=definition.description,
        matching_feedback=matching,
        stats=SegmentStats(
            count=len(matching),
            percentage=ratio(len(matching), window_size) * 100,
            avg_sentiment=average_sentiment(matching),
            top_categories=top_categories(matching, limit=5),
            top_sources=top_sources(matching, limit=3),
            urgency_distribution=urgency_distribution(matching)
        )
    )


def summarize_insights(segments: Sequence[Segment], segment_type: str) -> List[SegmentInsight]:
    """Headline observations about a segment list.

    Reports the largest segment, the most positive and most negative segments
    when their average sentiment is beyond +/-0.3, and every segment holding
    high or critical urgency feedback.

    Raises:
        UnknownSegmentType: If segment_type is not a known type
    """
    if not segments:
        return []

    try:
        segment_type = SegmentType(segment_type).value
    except ValueError:
        raise UnknownSegmentType(str(segment_type)) from None

    insights = []

    largest = max(segments, key=lambda s: s.stats.count)
    insights.append(SegmentInsight(
        type="largest_segment",
        title=f"Largest {segment_type} segment",
        description=f"{largest.name} represents {largest.stats.percentage:.1f}% of all feedback",
        value=largest.name,
        percentage=largest.stats.percentage
    ))

    most_positive = max(segments, key=lambda s: s.stats.avg_sentiment)
    if most_positive.stats.avg_sentiment > POSITIVE_SEGMENT_THRESHOLD:
        insights.append(SegmentInsight(
            type="most_positive",
            title="Most satisfied segment",
            description=f"{most_positive.name} has the highest satisfaction score",
            value=most_positive.name,
            sentiment=most_positive.stats.avg_sentiment
        ))

    most_negative = min(segments, key=lambda s: s.stats.avg_sentiment)
    if most_negative.stats.avg_sentiment < NEGATIVE_SEGMENT_THRESHOLD:
        insights.append(SegmentInsight(
            type="most_negative",
            title="Segment needing attention",
            description=f"{most_negative.name} has the lowest satisfaction score",
            value=most_negative.name,
            sentiment=most_negative.stats.avg_sentiment
        ))

    urgent = [
        s for s in segments
        if s.stats.urgency_distribution.get(Urgency.HIGH.value, 0)
        + s.stats.urgency_distribution.get(Urgency.CRITICAL.value, 0) > 0
    ]
    if urgent:
        insights.append(SegmentInsight(
            type="high_urgency",
            title="Segments with urgent issues",
            description=f"{len(urgent)} segments have high or critical urgency feedback",
            value=", ".join(s.name for s in urgent),
            count=len(urgent)
        ))

    return insights


def segment_analytics(segments: Sequence[Segment], total_feedback: int) -> SegmentAnalytics:
    """Distribution and sentiment overview across the segments of one type."""
    distribution = [
        SegmentSummary(
            id=s.id,
            name=s.name,
            count=s.stats.count,
            percentage=s.stats.percentage,
            avg_sentiment=s.stats.avg_sentiment
        )
        for s in segments
    ]
    top = sorted(segments, key=lambda s: s.stats.count, reverse=True)[:5]

    return SegmentAnalytics(
        total_segments=len(segments),
        total_feedback=total_feedback,
        average_segment_size=total_feedback / len(segments) if segments else 0.0,
        segment_distribution=distribution,
        top_segments=[
            SegmentSummary(id=s.id, name=s.name, count=s.stats.count, percentage=s.stats.percentage)
            for s in top
        ],
        sentiment_distribution={
            "positive": sum(1 for s in segments if s.stats.avg_sentiment > POSITIVE_SEGMENT_THRESHOLD),
            "neutral": sum(
                1 for s in segments
                if NEGATIVE_SEGMENT_THRESHOLD <= s.stats.avg_sentiment <= POSITIVE_SEGMENT_THRESHOLD
            ),
            "negative": sum(1 for s in segments if s.stats.avg_sentiment < NEGATIVE_SEGMENT_THRESHOLD),
        }
    )


def find_segment(result: SegmentationResult, segment_id: str) -> Segment:
    """Raises SegmentNotFound when the segment is absent (for example, empty)."""
    for segment in result.segments:
        if segment.id == segment_id:
            return segment
    raise SegmentNotFound(result.segment_type.value, [segment_id])


def compare_segments(result: SegmentationResult, segment_ids: Iterable[str]) -> SegmentComparison:
    """Side-by-side totals for selected segments of one classification.

    Raises:
        SegmentNotFound: If none of the requested segments are present
    """
    segment_ids = list(segment_ids)
    selected = [s for s in result.segments if s.id in segment_ids]
    if not selected:
        raise SegmentNotFound(result.segment_type.value, segment_ids)

    category_totals: Counter = Counter()
    source_totals: Counter = Counter()
    for segment in selected:
        for entry in segment.stats.top_categories:
            category_totals[entry.category] += entry.count
        for entry in segment.stats.top_sources:
            source_totals[entry.source] += entry.count

    return SegmentComparison(
        segment_type=result.segment_type,
        segments=selected,
        comparison=SegmentComparisonSummary(
            total_feedback=sum(s.stats.count for s in selected),
            average_sentiment=sum(s.stats.avg_sentiment for s in selected) / len(selected),
            top_categories=[
                CategoryCount(category=category, count=count)
                for category, count in category_totals.most_common(10)
            ],
            top_sources=[
                SourceCount(source=source, count=count)
                for source, count in source_totals.most_common(5)
            ]
        ),
        metadata=result.metadata
    )
