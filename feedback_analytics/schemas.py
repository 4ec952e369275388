"""Pydantic schemas for feedback records, analytics results and requests."""
from datetime import datetime, UTC
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    MIXED = "mixed"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChurnFactorType(str, Enum):
    NEGATIVE_SENTIMENT = "negative_sentiment"
    DECREASING_ENGAGEMENT = "decreasing_engagement"
    COMPETITOR_MENTIONS = "competitor_mentions"
    FEATURE_REQUESTS = "feature_requests"
    SUPPORT_ISSUES = "support_issues"
    PRICING_CONCERNS = "pricing_concerns"
    ONBOARDING_PROBLEMS = "onboarding_problems"
    TECHNICAL_ISSUES = "technical_issues"


class SegmentType(str, Enum):
    PERSONA = "persona"
    LIFECYCLE = "lifecycle"
    PLAN = "plan"
    BEHAVIOR = "behavior"
    GEOGRAPHIC = "geographic"
    TEMPORAL = "temporal"


class TimeRange(str, Enum):
    """Lookback windows accepted by the feedback window provider."""

    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"
    SIXTY_DAYS = "60d"
    NINETY_DAYS = "90d"

    @property
    def days(self) -> int:
        return int(self.value[:-1])


HIGH_URGENCY = (Urgency.HIGH, Urgency.CRITICAL)


# ============================================================================
# FEEDBACK
# ============================================================================

class FeedbackRecord(BaseModel):
    """A stored, sentiment-tagged feedback item. Read-only input to the engines."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    tenant_id: str
    content: str
    sentiment: Sentiment
    urgency: Urgency
    categories: Tuple[str, ...] = ()
    source: str
    customer_email: Optional[str] = None
    created_at: datetime
    is_resolved: bool = False

    @field_validator("categories", mode="before")
    @classmethod
    def _dedupe_categories(cls, value):
        if value is None:
            return ()
        # Keep first-seen order so frequency ties break deterministically
        return tuple(dict.fromkeys(category for category in value if category))

    @field_validator("created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class FeedbackCreate(BaseModel):
    """Request schema for storing an already-tagged feedback item."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "content": "Thinking about switching to an alternative, billing keeps failing.",
                "sentiment": "negative",
                "urgency": "high",
                "categories": ["complaint", "billing"],
                "source": "zendesk",
                "customer_email": "jane@example.com"
            }
        }
    )

    content: str = Field(..., min_length=1, max_length=5000, description="Feedback text")
    sentiment: Sentiment
    urgency: Urgency = Urgency.LOW
    categories: List[str] = Field(default_factory=list)
    source: str = Field(..., min_length=1, max_length=50)
    customer_email: Optional[str] = Field(None, max_length=255)
    created_at: Optional[datetime] = None
    is_resolved: bool = False


# ============================================================================
# CHURN RISK
# ============================================================================

class ChurnFactor(BaseModel):
    type: ChurnFactorType
    severity: Severity
    description: str
    count: Optional[int] = None
    gaps: Optional[List[float]] = None


class Prediction(BaseModel):
    type: Literal["timeline", "action"]
    prediction: str
    confidence: Optional[str] = None
    timeframe_days: Optional[int] = None
    actions: List[str] = Field(default_factory=list)
    priority: Optional[str] = None


class RiskMetadata(BaseModel):
    total_feedback: int
    time_range: Optional[str] = None
    source: str = "all"
    customer_email: Optional[str] = None
    analysis_date: datetime


class SentimentBucket(BaseModel):
    negative_ratio: float
    positive_ratio: float


class SentimentTrend(BaseModel):
    trends: List[SentimentBucket]
    is_improving: bool
    is_declining: bool


class EngagementPattern(BaseModel):
    total_feedback: int
    average_gap_days: float
    has_long_gaps: bool
    recent_activity: bool


class SupportHistory(BaseModel):
    total_issues: int
    unresolved_issues: int
    resolution_rate: float


class FeatureRequestSummary(BaseModel):
    feature_requests: int
    complaints: int
    ratio: float


class Recommendation(BaseModel):
    priority: str
    action: str
    description: str


class RiskDetails(BaseModel):
    sentiment_trend: SentimentTrend
    engagement_pattern: EngagementPattern
    support_history: SupportHistory
    feature_requests: FeatureRequestSummary
    recommendations: List[Recommendation]


class RiskAssessment(BaseModel):
    """Churn risk for one feedback window. Recomputed on every call."""

    risk_score: float = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    retention_probability: float = Field(..., ge=0, le=100)
    churn_factors: List[ChurnFactor]
    predictions: List[Prediction]
    metadata: RiskMetadata
    details: Optional[RiskDetails] = None


class RiskRecommendations(BaseModel):
    immediate: List[Recommendation]
    high: List[Recommendation]
    medium: List[Recommendation]
    low: List[Recommendation]
    risk_level: RiskLevel
    risk_score: float


class RiskLevelInfo(BaseModel):
    id: RiskLevel
    name: str
    description: str
    color: str
    icon: str


class ChurnFactorInfo(BaseModel):
    id: ChurnFactorType
    name: str
    description: str
    weight: int
    icon: str


# ============================================================================
# SEGMENTATION
# ============================================================================

class CategoryCount(BaseModel):
    category: str
    count: int


class SourceCount(BaseModel):
    source: str
    count: int


class SegmentStats(BaseModel):
    count: int
    percentage: float
    avg_sentiment: float
    top_categories: List[CategoryCount]
    top_sources: List[SourceCount]
    urgency_distribution: Dict[str, int]


class Segment(BaseModel):
    """A named cohort of feedback items. Built per call, never persisted."""

    id: str
    name: str
    description: str
    matching_feedback: Optional[List[FeedbackRecord]] = None
    stats: SegmentStats


class SegmentationMetadata(BaseModel):
    total_feedback: int
    time_range: Optional[str] = None
    source: str = "all"
    segment_count: int


class SegmentationResult(BaseModel):
    segment_type: SegmentType
    segments: List[Segment]
    metadata: Optional[SegmentationMetadata] = None


class SegmentInsight(BaseModel):
    type: Literal["largest_segment", "most_positive", "most_negative", "high_urgency"]
    title: str
    description: str
    value: str
    percentage: Optional[float] = None
    sentiment: Optional[float] = None
    count: Optional[int] = None


class SegmentSummary(BaseModel):
    id: str
    name: str
    count: int
    percentage: float
    avg_sentiment: Optional[float] = None


class SegmentAnalytics(BaseModel):
    total_segments: int
    total_feedback: int
    average_segment_size: float
    segment_distribution: List[SegmentSummary]
    top_segments: List[SegmentSummary]
    sentiment_distribution: Dict[str, int]


class SegmentComparisonSummary(BaseModel):
    total_feedback: int
    average_sentiment: float
    top_categories: List[CategoryCount]
    top_sources: List[SourceCount]


class SegmentComparison(BaseModel):
    segment_type: SegmentType
    segments: List[Segment]
    comparison: SegmentComparisonSummary
    metadata: Optional[SegmentationMetadata] = None


class SegmentTypeInfo(BaseModel):
    id: SegmentType
    name: str
    description: str
    icon: str


class CompareSegmentsRequest(BaseModel):
    segment_type: str
    segment_ids: List[str] = Field(..., min_length=1)


# ============================================================================
# SERVICE OPTIONS
# ============================================================================

class RiskOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_range: TimeRange = TimeRange.NINETY_DAYS
    source: str = "all"
    include_details: bool = True
    customer_email: Optional[str] = None


class SegmentOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_range: TimeRange = TimeRange.THIRTY_DAYS
    source: str = "all"
    limit: int = Field(1000, ge=1)
    include_metadata: bool = True
