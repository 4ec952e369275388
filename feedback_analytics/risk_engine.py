"""Churn risk scoring over a window of sentiment-tagged feedback."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from aggregation import (
    age_in_days,
    as_utc,
    as_window,
    contains_any,
    find_gaps,
    ratio,
    split_into_time_buckets,
)
from config import RiskEngineConfig, DEFAULT_RISK_CONFIG
from schemas import (
    HIGH_URGENCY,
    ChurnFactor,
    ChurnFactorInfo,
    ChurnFactorType,
    EngagementPattern,
    FeatureRequestSummary,
    FeedbackRecord,
    Prediction,
    Recommendation,
    RiskAssessment,
    RiskDetails,
    RiskLevel,
    RiskLevelInfo,
    RiskMetadata,
    Sentiment,
    SentimentBucket,
    SentimentTrend,
    Severity,
    SupportHistory,
)

logger = logging.getLogger(__name__)


RISK_LEVEL_METADATA = {
    RiskLevel.LOW: {
        "name": "Low Risk",
        "description": "Customer shows healthy engagement patterns",
        "color": "green",
        "icon": "check-circle"
    },
    RiskLevel.MEDIUM: {
        "name": "Medium Risk",
        "description": "Some concerning patterns detected",
        "color": "yellow",
        "icon": "alert-circle"
    },
    RiskLevel.HIGH: {
        "name": "High Risk",
        "description": "Multiple churn indicators detected",
        "color": "orange",
        "icon": "alert-triangle"
    },
    RiskLevel.CRITICAL: {
        "name": "Critical Risk",
        "description": "Immediate intervention required",
        "color": "red",
        "icon": "x-circle"
    },
}


class ChurnRiskEngine:
    """Combines weighted heuristics into a 0-100 churn risk score.

    The engine holds no state besides its configuration; every call is a pure
    function of the window it is given and the reference time.
    """

    def __init__(self, risk_config: RiskEngineConfig = DEFAULT_RISK_CONFIG):
        self.config = risk_config

    def compute_risk(
        self,
        window: Sequence[FeedbackRecord],
        now: Optional[datetime] = None,
        time_range: Optional[str] = None,
        source: str = "all",
        customer_email: Optional[str] = None,
        include_details: bool = True
    ) -> RiskAssessment:
        """Score churn risk for a feedback window.

        Args:
            window: Feedback records (any order)
            now: Reference time for recency rules (defaults to current UTC time)
            time_range: Lookback window the records were fetched with, for metadata
            source: Source filter the records were fetched with, for metadata
            customer_email: Customer filter the records were fetched with, for metadata
            include_details: Attach trend, engagement and support breakdowns

        Returns:
            Complete RiskAssessment

        Raises:
            InvalidWindow: If the window is malformed
        """
        records = as_window(window)
        now = as_utc(now)

        risk_score = self.calculate_risk_score(records, now)

        assessment = RiskAssessment(
            risk_score=risk_score,
            risk_level=self.determine_risk_level(risk_score),
            retention_probability=self.calculate_retention_probability(risk_score),
            churn_factors=self.identify_churn_factors(records, now),
            predictions=self.generate_predictions(risk_score),
            metadata=RiskMetadata(
                total_feedback=len(records),
                time_range=time_range,
                source=source,
                customer_email=customer_email,
                analysis_date=now
            ),
            details=self.generate_detailed_analysis(records, risk_score, now) if include_details else None
        )

        logger.debug(
            f"Risk computed over {len(records)} items: "
            f"{assessment.risk_score:.1f} ({assessment.risk_level.value})"
        )
        return assessment

    # ------------------------------------------------------------------
    # Score
    # ------------------------------------------------------------------

    def calculate_risk_score(self, records: List[FeedbackRecord], now: datetime) -> float:
        """Baseline plus the weighted component sub-scores, clamped to [0, 100]."""
        if not records:
            return float(self.config.baseline_score)

        weights = self.config.weights
        components = self.component_scores(records, now)

        risk_score = self.config.baseline_score
        risk_score += components["sentiment"] * weights.sentiment
        risk_score += components["engagement"] * weights.engagement
        risk_score += components["support"] * weights.support
        risk_score += components["feature"] * weights.feature
        risk_score += components["competitor"] * weights.competitor

        logger.debug(f"Risk components: {components}")
        return float(max(0.0, min(100.0, risk_score)))

    def component_scores(self, records: List[FeedbackRecord], now: datetime) -> Dict[str, float]:
        return {
            "sentiment": self.calculate_sentiment_risk(records, now),
            "engagement": self.calculate_engagement_risk(records),
            "support": self.calculate_support_risk(records),
            "feature": self.calculate_feature_risk(records),
            "competitor": self.calculate_competitor_risk(records),
        }

    def calculate_sentiment_risk(self, records: List[FeedbackRecord], now: datetime) -> float:
        c = self.config
        negative = [r for r in records if r.sentiment == Sentiment.NEGATIVE]
        recent_negative = [r for r in negative if age_in_days(r, now) <= c.recent_days]

        risk = ratio(len(negative), len(records)) * c.negative_ratio_points
        risk += ratio(len(recent_negative), len(records)) * c.recent_negative_points
        return risk

    def calculate_engagement_risk(self, records: List[FeedbackRecord]) -> float:
        c = self.config
        risk = 0.0

        buckets = split_into_time_buckets(records, c.bucket_count)
        if len(buckets) >= 2:
            recent_count = len(buckets[-1])
            previous_count = len(buckets[-2])

            if recent_count < previous_count:
                risk += c.decline_points

            if recent_count == 0 and previous_count > 0:
                risk += c.silence_points

        if any(gap > c.gap_days for gap in find_gaps(records)):
            risk += c.gap_points

        return risk

    def calculate_support_risk(self, records: List[FeedbackRecord]) -> float:
        c = self.config
        risk = 0.0

        for r in records:
            if contains_any(r.content, c.support_keywords):
                risk += c.support_keyword_points
            if contains_any(r.content, c.urgent_keywords):
                risk += c.urgent_keyword_points
            if r.urgency in HIGH_URGENCY:
                risk += c.high_urgency_points

        return min(c.component_cap, risk)

    def calculate_feature_risk(self, records: List[FeedbackRecord]) -> float:
        c = self.config
        feature_requests = [r for r in records if c.feature_request_category in r.categories]
        complaints = [r for r in records if self._is_complaint(r)]

        risk = 0.0
        if ratio(len(complaints), len(records)) > c.complaint_ratio_threshold:
            risk += c.complaint_ratio_points
        if ratio(len(feature_requests), len(records)) > c.feature_ratio_threshold:
            risk += c.feature_ratio_points

        unresolved = [r for r in complaints if not r.is_resolved]
        risk += len(unresolved) * c.unresolved_complaint_points

        return min(c.component_cap, risk)

    def calculate_competitor_risk(self, records: List[FeedbackRecord]) -> float:
        c = self.config
        mentions = sum(1 for r in records if contains_any(r.content, c.competitor_keywords))
        return min(c.component_cap, mentions * c.competitor_points)

    def _is_complaint(self, record: FeedbackRecord) -> bool:
        return any(category in record.categories for category in self.config.complaint_categories)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def determine_risk_level(self, risk_score: float) -> RiskLevel:
        thresholds = self.config.thresholds
        if risk_score >= thresholds.critical:
            return RiskLevel.CRITICAL
        if risk_score >= thresholds.high:
            return RiskLevel.HIGH
        if risk_score >= thresholds.medium:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def calculate_retention_probability(self, risk_score: float) -> float:
        c = self.config
        probability = 100 - risk_score

        if risk_score >= c.thresholds.critical:
            probability *= c.high_risk_retention_factor
        elif risk_score <= c.low_risk_retention_score:
            probability *= c.low_risk_retention_factor

        return float(max(0.0, min(100.0, probability)))

    def identify_churn_factors(self, records: List[FeedbackRecord], now: datetime) -> List[ChurnFactor]:
        """Discrete churn signals, detected independently of the score."""
        c = self.config
        factors: List[ChurnFactor] = []

        recent_negative = [
            r for r in records
            if r.sentiment == Sentiment.NEGATIVE and age_in_days(r, now) <= c.recent_days
        ]
        if recent_negative:
            factors.append(ChurnFactor(
                type=ChurnFactorType.NEGATIVE_SENTIMENT,
                severity=Severity.HIGH,
                description=f"{len(recent_negative)} negative feedback items in the last {c.recent_days} days",
                count=len(recent_negative)
            ))

        long_gaps = [gap for gap in find_gaps(records) if gap > c.gap_days]
        if long_gaps:
            factors.append(ChurnFactor(
                type=ChurnFactorType.DECREASING_ENGAGEMENT,
                severity=Severity.MEDIUM,
                description="Long periods without feedback activity",
                gaps=[round(gap, 2) for gap in long_gaps]
            ))

        competitor_mentions = [
            r for r in records if contains_any(r.content, c.competitor_factor_keywords)
        ]
        if competitor_mentions:
            factors.append(ChurnFactor(
                type=ChurnFactorType.COMPETITOR_MENTIONS,
                severity=Severity.HIGH,
                description=f"{len(competitor_mentions)} mentions of competitors or alternatives",
                count=len(competitor_mentions)
            ))

        unresolved_issues = [
            r for r in records if r.urgency in HIGH_URGENCY and not r.is_resolved
        ]
        if unresolved_issues:
            factors.append(ChurnFactor(
                type=ChurnFactorType.SUPPORT_ISSUES,
                severity=Severity.CRITICAL,
                description=f"{len(unresolved_issues)} unresolved high-priority issues",
                count=len(unresolved_issues)
            ))

        return factors

    def generate_predictions(self, risk_score: float) -> List[Prediction]:
        thresholds = self.config.thresholds
        predictions: List[Prediction] = []

        if risk_score >= thresholds.critical:
            predictions.append(Prediction(
                type="timeline",
                prediction="High risk of churn within 30 days",
                confidence="high",
                timeframe_days=30
            ))
        elif risk_score >= thresholds.high:
            predictions.append(Prediction(
                type="timeline",
                prediction="Moderate risk of churn within 60 days",
                confidence="medium",
                timeframe_days=60
            ))
        elif risk_score >= thresholds.medium:
            predictions.append(Prediction(
                type="timeline",
                prediction="Low risk of churn within 90 days",
                confidence="low",
                timeframe_days=90
            ))

        if risk_score >= thresholds.high:
            predictions.append(Prediction(
                type="action",
                prediction="Immediate intervention required",
                actions=["Personal outreach", "Feature prioritization", "Support escalation"],
                priority="high"
            ))
        elif risk_score >= thresholds.medium:
            predictions.append(Prediction(
                type="action",
                prediction="Proactive engagement recommended",
                actions=["Regular check-ins", "Feature updates", "Success stories"],
                priority="medium"
            ))

        return predictions

    # ------------------------------------------------------------------
    # Detailed analysis
    # ------------------------------------------------------------------

    def generate_detailed_analysis(
        self,
        records: List[FeedbackRecord],
        risk_score: float,
        now: datetime
    ) -> RiskDetails:
        return RiskDetails(
            sentiment_trend=self.analyze_sentiment_trend(records),
            engagement_pattern=self.analyze_engagement_pattern(records, now),
            support_history=self.analyze_support_history(records),
            feature_requests=self.analyze_feature_requests(records),
            recommendations=self.generate_recommendations(risk_score)
        )

    def analyze_sentiment_trend(self, records: List[FeedbackRecord]) -> SentimentTrend:
        trends = []
        for bucket in split_into_time_buckets(records, self.config.bucket_count):
            negative = sum(1 for r in bucket if r.sentiment == Sentiment.NEGATIVE)
            positive = sum(1 for r in bucket if r.sentiment == Sentiment.POSITIVE)
            trends.append(SentimentBucket(
                negative_ratio=ratio(negative, len(bucket)),
                positive_ratio=ratio(positive, len(bucket))
            ))

        comparable = len(trends) >= 2
        return SentimentTrend(
            trends=trends,
            is_improving=comparable and trends[-1].negative_ratio < trends[0].negative_ratio,
            is_declining=comparable and trends[-1].negative_ratio > trends[0].negative_ratio
        )

    def analyze_engagement_pattern(self, records: List[FeedbackRecord], now: datetime) -> EngagementPattern:
        gaps = find_gaps(records)
        return EngagementPattern(
            total_feedback=len(records),
            average_gap_days=sum(gaps) / len(gaps) if gaps else 0.0,
            has_long_gaps=any(gap > self.config.gap_days for gap in gaps),
            recent_activity=any(
                age_in_days(r, now) <= self.config.recent_activity_days for r in records
            )
        )

    def analyze_support_history(self, records: List[FeedbackRecord]) -> SupportHistory:
        issues = [r for r in records if r.urgency in HIGH_URGENCY]
        unresolved = [r for r in issues if not r.is_resolved]
        return SupportHistory(
            total_issues=len(issues),
            unresolved_issues=len(unresolved),
            resolution_rate=(len(issues) - len(unresolved)) / len(issues) if issues else 1.0
        )

    def analyze_feature_requests(self, records: List[FeedbackRecord]) -> FeatureRequestSummary:
        feature_requests = sum(
            1 for r in records if self.config.feature_request_category in r.categories
        )
        complaints = sum(1 for r in records if self._is_complaint(r))
        return FeatureRequestSummary(
            feature_requests=feature_requests,
            complaints=complaints,
            ratio=ratio(feature_requests, len(records))
        )

    def generate_recommendations(self, risk_score: float) -> List[Recommendation]:
        thresholds = self.config.thresholds

        if risk_score >= thresholds.critical:
            return [
                Recommendation(
                    priority="critical",
                    action="Immediate personal outreach",
                    description="Schedule a call with the customer to understand their concerns"
                ),
                Recommendation(
                    priority="high",
                    action="Escalate support issues",
                    description="Prioritize resolution of any open high-priority support tickets"
                ),
            ]
        if risk_score >= thresholds.high:
            return [
                Recommendation(
                    priority="high",
                    action="Proactive engagement",
                    description="Send personalized updates about requested features or improvements"
                ),
                Recommendation(
                    priority="medium",
                    action="Success story sharing",
                    description="Share relevant customer success stories and use cases"
                ),
            ]
        if risk_score >= thresholds.medium:
            return [
                Recommendation(
                    priority="medium",
                    action="Regular check-ins",
                    description="Schedule periodic check-ins to maintain engagement"
                ),
            ]
        return [
            Recommendation(
                priority="low",
                action="Maintain current engagement",
                description="Continue with current engagement strategy"
            ),
        ]


def risk_level_catalog() -> List[RiskLevelInfo]:
    """Display metadata for every risk level, lowest first."""
    return [
        RiskLevelInfo(id=level, **RISK_LEVEL_METADATA[level])
        for level in RiskLevel
    ]


def churn_factor_catalog(risk_config: RiskEngineConfig = DEFAULT_RISK_CONFIG) -> List[ChurnFactorInfo]:
    """Display metadata for the scored churn factors with their weight in percent."""
    weights = risk_config.weights
    entries: List[Dict[str, Any]] = [
        {
            "id": ChurnFactorType.NEGATIVE_SENTIMENT,
            "name": "Negative Sentiment",
            "description": "Customer expressing dissatisfaction or negative emotions",
            "weight": weights.sentiment,
            "icon": "frown"
        },
        {
            "id": ChurnFactorType.DECREASING_ENGAGEMENT,
            "name": "Decreasing Engagement",
            "description": "Reduced interaction and feedback activity",
            "weight": weights.engagement,
            "icon": "trending-down"
        },
        {
            "id": ChurnFactorType.SUPPORT_ISSUES,
            "name": "Support Issues",
            "description": "Unresolved high-priority support problems",
            "weight": weights.support,
            "icon": "help-circle"
        },
        {
            "id": ChurnFactorType.FEATURE_REQUESTS,
            "name": "Feature Requests vs Complaints",
            "description": "Ratio of feature requests to complaints",
            "weight": weights.feature,
            "icon": "settings"
        },
        {
            "id": ChurnFactorType.COMPETITOR_MENTIONS,
            "name": "Competitor Mentions",
            "description": "References to competitors or alternatives",
            "weight": weights.competitor,
            "icon": "users"
        },
    ]
    return [
        ChurnFactorInfo(**{**entry, "weight": round(entry["weight"] * 100)})
        for entry in entries
    ]
