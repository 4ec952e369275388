"""Declarative segment definitions and the criteria they are built from.

A segment definition is an ordered tuple of criteria. Each criterion is one of
a closed set of predicate variants, told apart by its ``kind`` tag, and a
feedback item belongs to the segment when every criterion accepts it.
"""
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Annotated, Dict, Literal, Mapping, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field

from aggregation import age_in_days
from schemas import FeedbackRecord, SegmentType, SegmentTypeInfo, Urgency


def _within(value: float, at_least: Optional[float], at_most: Optional[float]) -> bool:
    if at_least is not None and value < at_least:
        return False
    if at_most is not None and value > at_most:
        return False
    return True


@dataclass(frozen=True)
class CriteriaContext:
    """Per-call lookups the customer-level criteria need."""

    customer_counts: Mapping[Optional[str], int]
    customer_sentiment: Mapping[Optional[str], float]
    now: datetime


class CountRange(BaseModel):
    """Number of items in the window from the candidate's customer."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["feedback_count"] = "feedback_count"
    at_least: Optional[int] = None
    at_most: Optional[int] = None

    def matches(self, record: FeedbackRecord, context: CriteriaContext) -> bool:
        return _within(context.customer_counts[record.customer_email], self.at_least, self.at_most)


class SentimentRange(BaseModel):
    """Bipolar sentiment average over the candidate's customer."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["avg_sentiment"] = "avg_sentiment"
    at_least: Optional[float] = None
    at_most: Optional[float] = None

    def matches(self, record: FeedbackRecord, context: CriteriaContext) -> bool:
        return _within(context.customer_sentiment[record.customer_email], self.at_least, self.at_most)


class CategoryMembership(BaseModel):
    """Candidate carries at least one of the categories."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["categories"] = "categories"
    categories: Tuple[str, ...]

    def matches(self, record: FeedbackRecord, context: CriteriaContext) -> bool:
        return any(category in record.categories for category in self.categories)


class UrgencySet(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["urgency"] = "urgency"
    levels: Tuple[Urgency, ...]

    def matches(self, record: FeedbackRecord, context: CriteriaContext) -> bool:
        return record.urgency in self.levels


class ContentLengthRange(BaseModel):
    """Length of the candidate's own content, in characters."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["content_length"] = "content_length"
    at_least: Optional[int] = None
    at_most: Optional[int] = None

    def matches(self, record: FeedbackRecord, context: CriteriaContext) -> bool:
        return _within(len(record.content), self.at_least, self.at_most)


class RecencyWindow(BaseModel):
    """Candidate is at most max_age_days old at analysis time."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["recency"] = "recency"
    max_age_days: float

    def matches(self, record: FeedbackRecord, context: CriteriaContext) -> bool:
        return age_in_days(record, context.now) <= self.max_age_days


Criterion = Annotated[
    Union[CountRange, SentimentRange, CategoryMembership, UrgencySet, ContentLengthRange, RecencyWindow],
    Field(discriminator="kind")
]


class SegmentDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    criteria: Tuple[Criterion, ...] = ()

    def matches(self, record: FeedbackRecord, context: CriteriaContext) -> bool:
        """AND of every criterion; a definition without criteria accepts everything."""
        return all(criterion.matches(record, context) for criterion in self.criteria)


HIGH_OR_CRITICAL = UrgencySet(levels=(Urgency.HIGH, Urgency.CRITICAL))


PERSONA_SEGMENTS = (
    SegmentDefinition(
        id="powerUser",
        name="Power User",
        description="Highly engaged users with frequent, detailed feedback",
        criteria=(
            CountRange(at_least=5),
            SentimentRange(at_least=0.3),
            CategoryMembership(categories=("feature_request", "bug_report", "improvement")),
        )
    ),
    SegmentDefinition(
        id="casualUser",
        name="Casual User",
        description="Occasional users with basic feedback",
        criteria=(
            CountRange(at_least=1, at_most=4),
            SentimentRange(at_least=-0.5, at_most=0.5),
            CategoryMembership(categories=("general", "question", "praise")),
        )
    ),
    SegmentDefinition(
        id="frustratedUser",
        name="Frustrated User",
        description="Users experiencing issues or dissatisfaction",
        criteria=(
            SentimentRange(at_most=-0.3),
            HIGH_OR_CRITICAL,
            CategoryMembership(categories=("bug_report", "complaint", "issue")),
        )
    ),
    SegmentDefinition(
        id="advocate",
        name="Advocate",
        description="Highly satisfied users who promote the product",
        criteria=(
            SentimentRange(at_least=0.7),
            CategoryMembership(categories=("praise", "recommendation", "positive_review")),
        )
    ),
    SegmentDefinition(
        id="newUser",
        name="New User",
        description="Recently onboarded users",
        criteria=(
            CountRange(at_most=2),
            CategoryMembership(categories=("onboarding", "first_impression", "tutorial")),
        )
    ),
)

LIFECYCLE_SEGMENTS = (
    SegmentDefinition(
        id="awareness",
        name="Awareness",
        description="Users discovering the product",
        criteria=(
            CategoryMembership(categories=("first_impression", "discovery", "onboarding")),
            CountRange(at_most=1),
        )
    ),
    SegmentDefinition(
        id="consideration",
        name="Consideration",
        description="Users evaluating the product",
        criteria=(
            CategoryMembership(categories=("feature_request", "question", "comparison")),
            CountRange(at_least=2, at_most=5),
        )
    ),
    SegmentDefinition(
        id="adoption",
        name="Adoption",
        description="Users actively using the product",
        criteria=(
            CategoryMembership(categories=("usage", "workflow", "integration")),
            CountRange(at_least=3),
        )
    ),
    SegmentDefinition(
        id="retention",
        name="Retention",
        description="Long-term users providing ongoing feedback",
        criteria=(
            CountRange(at_least=5),
            CategoryMembership(categories=("improvement", "optimization", "advanced_features")),
        )
    ),
    SegmentDefinition(
        id="churn",
        name="Churn Risk",
        description="Users showing signs of leaving",
        criteria=(
            SentimentRange(at_most=-0.5),
            HIGH_OR_CRITICAL,
            CategoryMembership(categories=("complaint", "cancellation", "negative_review")),
        )
    ),
)

# Plan and geographic cohorts are inferred from feedback topics until billing
# and location data are joined into the feedback window.
PLAN_SEGMENTS = (
    SegmentDefinition(
        id="free",
        name="Free Plan",
        description="Users on the free tier",
        criteria=(
            CategoryMembership(categories=("upgrade_request", "limitation", "feature_request")),
            SentimentRange(at_most=0.3),
        )
    ),
    SegmentDefinition(
        id="starter",
        name="Starter Plan",
        description="Users on the starter plan",
        criteria=(
            CategoryMembership(categories=("feature_request", "integration", "workflow")),
            CountRange(at_least=2, at_most=8),
        )
    ),
    SegmentDefinition(
        id="professional",
        name="Professional Plan",
        description="Users on the professional plan",
        criteria=(
            CategoryMembership(categories=("advanced_features", "api_request", "enterprise")),
            CountRange(at_least=5),
        )
    ),
    SegmentDefinition(
        id="enterprise",
        name="Enterprise Plan",
        description="Enterprise users",
        criteria=(
            CategoryMembership(categories=("enterprise", "security", "compliance", "custom_integration")),
            HIGH_OR_CRITICAL,
        )
    ),
)

BEHAVIOR_SEGMENTS = (
    SegmentDefinition(
        id="vocal",
        name="Vocal Users",
        description="Users who provide frequent, detailed feedback",
        criteria=(
            CountRange(at_least=5),
            ContentLengthRange(at_least=100),
        )
    ),
    SegmentDefinition(
        id="silent",
        name="Silent Users",
        description="Users who rarely provide feedback",
        criteria=(
            CountRange(at_most=1),
            ContentLengthRange(at_most=50),
        )
    ),
    SegmentDefinition(
        id="critical",
        name="Critical Users",
        description="Users who focus on problems and issues",
        criteria=(
            SentimentRange(at_most=-0.3),
            CategoryMembership(categories=("bug_report", "complaint", "issue")),
        )
    ),
    SegmentDefinition(
        id="supportive",
        name="Supportive Users",
        description="Users who provide positive reinforcement",
        criteria=(
            SentimentRange(at_least=0.5),
            CategoryMembership(categories=("praise", "recommendation", "positive_review")),
        )
    ),
    SegmentDefinition(
        id="featureRequesters",
        name="Feature Requesters",
        description="Users who frequently request new features",
        criteria=(
            CategoryMembership(categories=("feature_request",)),
            CountRange(at_least=2),
        )
    ),
)

GEOGRAPHIC_SEGMENTS = (
    SegmentDefinition(
        id="northAmerica",
        name="North America",
        description="Users from North America",
        criteria=(
            CategoryMembership(categories=("feature_request", "integration")),
        )
    ),
    SegmentDefinition(
        id="europe",
        name="Europe",
        description="Users from Europe",
        criteria=(
            CategoryMembership(categories=("compliance", "gdpr", "localization")),
        )
    ),
    SegmentDefinition(
        id="asiaPacific",
        name="Asia Pacific",
        description="Users from Asia Pacific",
        criteria=(
            CategoryMembership(categories=("mobile", "localization", "payment")),
        )
    ),
)

TEMPORAL_SEGMENTS = (
    SegmentDefinition(
        id="recent",
        name="Recent Users",
        description="Users who provided feedback in the last 7 days",
        criteria=(
            RecencyWindow(max_age_days=7),
        )
    ),
    SegmentDefinition(
        id="active",
        name="Active Users",
        description="Users who provided feedback in the last 30 days",
        criteria=(
            RecencyWindow(max_age_days=30),
        )
    ),
    SegmentDefinition(
        id="returning",
        name="Returning Users",
        description="Users who provided feedback multiple times",
        criteria=(
            CountRange(at_least=2),
        )
    ),
    SegmentDefinition(
        id="seasonal",
        name="Seasonal Users",
        description="Users with periodic feedback patterns",
        criteria=(
            CategoryMembership(categories=("seasonal_feature", "periodic_request")),
        )
    ),
)


SEGMENT_CATALOG: Mapping[SegmentType, Tuple[SegmentDefinition, ...]] = MappingProxyType({
    SegmentType.PERSONA: PERSONA_SEGMENTS,
    SegmentType.LIFECYCLE: LIFECYCLE_SEGMENTS,
    SegmentType.PLAN: PLAN_SEGMENTS,
    SegmentType.BEHAVIOR: BEHAVIOR_SEGMENTS,
    SegmentType.GEOGRAPHIC: GEOGRAPHIC_SEGMENTS,
    SegmentType.TEMPORAL: TEMPORAL_SEGMENTS,
})


SEGMENT_TYPE_METADATA: Dict[SegmentType, Dict[str, str]] = {
    SegmentType.PERSONA: {
        "name": "User Personas",
        "description": "Group users by their behavior patterns and engagement levels",
        "icon": "users"
    },
    SegmentType.LIFECYCLE: {
        "name": "Lifecycle Stages",
        "description": "Segment users by their journey stage in the product",
        "icon": "cycle"
    },
    SegmentType.PLAN: {
        "name": "Subscription Plans",
        "description": "Group feedback by user subscription tiers",
        "icon": "credit-card"
    },
    SegmentType.BEHAVIOR: {
        "name": "Behavior Patterns",
        "description": "Segment by user interaction and feedback patterns",
        "icon": "activity"
    },
    SegmentType.GEOGRAPHIC: {
        "name": "Geographic Location",
        "description": "Group users by their geographic location",
        "icon": "map-pin"
    },
    SegmentType.TEMPORAL: {
        "name": "Temporal Patterns",
        "description": "Segment by time-based usage patterns",
        "icon": "clock"
    },
}


def segment_type_info(segment_type: SegmentType) -> SegmentTypeInfo:
    return SegmentTypeInfo(id=segment_type, **SEGMENT_TYPE_METADATA[segment_type])
