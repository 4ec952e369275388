"""Tests for churn risk scoring."""
import random

import pytest

from config import RiskEngineConfig, RiskWeights
from errors import InvalidWindow
from risk_engine import ChurnRiskEngine, churn_factor_catalog, risk_level_catalog
from schemas import ChurnFactorType, RiskLevel, Severity


@pytest.fixture
def engine():
    return ChurnRiskEngine()


def factor_types(assessment):
    return {factor.type for factor in assessment.churn_factors}


# ============================================================================
# EMPTY WINDOW & BOUNDS
# ============================================================================

class TestEmptyWindow:

    def test_empty_window_is_neutral(self, engine, now):
        assessment = engine.compute_risk([], now=now)

        assert assessment.risk_score == 50
        assert assessment.risk_level == RiskLevel.MEDIUM
        assert assessment.retention_probability == 50
        assert assessment.churn_factors == []
        assert assessment.metadata.total_feedback == 0

    def test_empty_window_still_has_predictions(self, engine, now):
        assessment = engine.compute_risk([], now=now)

        timelines = [p for p in assessment.predictions if p.type == "timeline"]
        assert timelines[0].timeframe_days == 90


class TestScoreBounds:

    SENTIMENTS = ["positive", "negative", "neutral", "mixed"]
    URGENCIES = ["low", "medium", "high", "critical"]
    CONTENTS = [
        "Urgent help needed, the export is broken",
        "We are evaluating an alternative, considering a switch to a competitor",
        "Love the new dashboard",
        "ok",
    ]
    CATEGORIES = [("complaint",), ("bug_report", "feature_request"), ("praise",), ()]

    def random_window(self, rng, make_feedback):
        return [
            make_feedback(
                days_ago=rng.uniform(0, 120),
                sentiment=rng.choice(self.SENTIMENTS),
                urgency=rng.choice(self.URGENCIES),
                content=rng.choice(self.CONTENTS),
                categories=rng.choice(self.CATEGORIES),
                is_resolved=rng.random() < 0.5,
            )
            for _ in range(rng.randint(1, 40))
        ]

    def test_score_and_retention_stay_in_range(self, engine, make_feedback, now):
        rng = random.Random(1234)
        for _ in range(50):
            assessment = engine.compute_risk(self.random_window(rng, make_feedback), now=now)
            assert 0 <= assessment.risk_score <= 100
            assert 0 <= assessment.retention_probability <= 100

    def test_worst_case_is_clamped(self, engine, make_feedback, now):
        window = [
            make_feedback(
                days_ago=day * 20,
                sentiment="negative",
                urgency="critical",
                content="URGENT: broken again, switching to a competitor",
                categories=["complaint"],
            )
            for day in range(5)
        ]

        assessment = engine.compute_risk(window, now=now)

        assert assessment.risk_score <= 100
        assert assessment.risk_level == RiskLevel.CRITICAL


# ============================================================================
# LEVELS, RETENTION & PREDICTIONS
# ============================================================================

class TestRiskLevel:

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (39.9, RiskLevel.LOW),
        (40, RiskLevel.MEDIUM),
        (59.9, RiskLevel.MEDIUM),
        (60, RiskLevel.HIGH),
        (79.9, RiskLevel.HIGH),
        (80, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ])
    def test_level_boundaries(self, engine, score, level):
        assert engine.determine_risk_level(score) == level

    def test_level_is_monotonic(self, engine):
        order = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]
        levels = [order.index(engine.determine_risk_level(score / 10)) for score in range(0, 1001)]
        assert levels == sorted(levels)

    @pytest.mark.parametrize("score,expected", [
        (85, 12.0),
        (80, 16.0),
        (50, 50.0),
        (20, 96.0),
        (10, 100.0),
    ])
    def test_retention_probability(self, engine, score, expected):
        assert engine.calculate_retention_probability(score) == pytest.approx(expected)

    @pytest.mark.parametrize("score,timeframe,priority", [
        (85, 30, "high"),
        (65, 60, "high"),
        (45, 90, "medium"),
    ])
    def test_prediction_bands(self, engine, score, timeframe, priority):
        predictions = engine.generate_predictions(score)

        timeline = next(p for p in predictions if p.type == "timeline")
        action = next(p for p in predictions if p.type == "action")
        assert timeline.timeframe_days == timeframe
        assert action.priority == priority
        assert action.actions

    def test_low_scores_have_no_predictions(self, engine):
        assert engine.generate_predictions(39.9) == []


# ============================================================================
# COMPONENTS
# ============================================================================

class TestSentimentComponent:

    def test_negative_and_recent_negative_ratios(self, engine, make_feedback, now):
        records = [
            make_feedback(days_ago=5, sentiment="negative"),
            make_feedback(days_ago=40, sentiment="negative"),
            make_feedback(days_ago=2, sentiment="positive"),
            make_feedback(days_ago=3, sentiment="neutral"),
        ]
        # 0.5 * 50 + 0.25 * 30
        assert engine.calculate_sentiment_risk(records, now) == pytest.approx(32.5)


class TestEngagementComponent:

    def test_decline_into_silence(self, engine, make_feedback):
        # Span of 9 days: buckets hold 2, 1 and 0 items, the newest closes the window
        records = [
            make_feedback(days_ago=9),
            make_feedback(days_ago=8),
            make_feedback(days_ago=5),
            make_feedback(days_ago=0),
        ]
        assert engine.calculate_engagement_risk(records) == 60

    def test_long_gap(self, engine, make_feedback):
        records = [make_feedback(days_ago=50), make_feedback(days_ago=5)]
        assert engine.calculate_engagement_risk(records) == 25

    def test_steady_activity_is_risk_free(self, engine, make_feedback):
        records = [make_feedback(days_ago=day) for day in range(10)]
        assert engine.calculate_engagement_risk(records) == 0

    @pytest.mark.parametrize("count", [1, 3])
    def test_single_timestamp_is_risk_neutral(self, engine, make_feedback, count):
        records = [make_feedback(days_ago=4) for _ in range(count)]
        assert engine.calculate_engagement_risk(records) == 0


class TestSupportComponent:

    def test_points_per_item(self, engine, make_feedback):
        records = [
            make_feedback(content="Need help with exports"),
            make_feedback(content="Please fix ASAP", urgency="high"),
        ]
        # 10 + (20 + 15)
        assert engine.calculate_support_risk(records) == 45

    def test_capped(self, engine, make_feedback):
        records = [make_feedback(content="Urgent help", urgency="critical") for _ in range(5)]
        assert engine.calculate_support_risk(records) == 50


class TestFeatureComponent:

    def test_unresolved_complaints_add_up(self, engine, make_feedback):
        records = [
            make_feedback(categories=["complaint"]),
            make_feedback(categories=["bug_report"]),
            make_feedback(categories=["praise"]),
            make_feedback(categories=["praise"]),
        ]
        # ratio 0.5 > 0.3 gives 30, plus 10 per unresolved complaint
        assert engine.calculate_feature_risk(records) == 50

    def test_resolved_complaints_only_count_for_ratio(self, engine, make_feedback):
        records = [
            make_feedback(categories=["complaint"], is_resolved=True),
            make_feedback(categories=["praise"]),
        ]
        assert engine.calculate_feature_risk(records) == 30

    def test_feature_request_heavy_window(self, engine, make_feedback):
        records = [
            make_feedback(categories=["feature_request"]),
            make_feedback(categories=["feature_request"]),
            make_feedback(categories=["feature_request"]),
            make_feedback(categories=["praise"]),
        ]
        assert engine.calculate_feature_risk(records) == 15


class TestCompetitorComponent:

    def test_points_per_item_not_per_keyword(self, engine, make_feedback):
        records = [
            make_feedback(content="Considering an alternative, evaluating a competitor"),
            make_feedback(content="The other tool does this better"),
            make_feedback(content="Works great"),
        ]
        assert engine.calculate_competitor_risk(records) == 30

    def test_capped(self, engine, make_feedback):
        records = [make_feedback(content="Planning a migration") for _ in range(5)]
        assert engine.calculate_competitor_risk(records) == 50


# ============================================================================
# CHURN FACTORS
# ============================================================================

class TestChurnFactors:

    def test_recent_negative_sentiment(self, engine, make_feedback, now):
        records = [
            make_feedback(days_ago=3, sentiment="negative"),
            make_feedback(days_ago=45, sentiment="negative"),
        ]

        factors = engine.identify_churn_factors(records, now)
        negative = next(f for f in factors if f.type == ChurnFactorType.NEGATIVE_SENTIMENT)

        assert negative.count == 1
        assert negative.severity == Severity.HIGH

    def test_decreasing_engagement_reports_gaps(self, engine, make_feedback, now):
        records = [make_feedback(days_ago=80), make_feedback(days_ago=40), make_feedback(days_ago=35)]

        factors = engine.identify_churn_factors(records, now)
        engagement = next(f for f in factors if f.type == ChurnFactorType.DECREASING_ENGAGEMENT)

        assert engagement.severity == Severity.MEDIUM
        assert engagement.gaps == [40.0]

    def test_competitor_factor_uses_narrow_keywords(self, engine, make_feedback, now):
        switching = [make_feedback(content="We are considering switching")]
        naming = [make_feedback(content="A competitor offers this")]

        assert ChurnFactorType.COMPETITOR_MENTIONS not in {
            f.type for f in engine.identify_churn_factors(switching, now)
        }
        assert ChurnFactorType.COMPETITOR_MENTIONS in {
            f.type for f in engine.identify_churn_factors(naming, now)
        }

    def test_resolved_urgent_issues_are_not_factors(self, engine, make_feedback, now):
        records = [make_feedback(urgency="critical", is_resolved=True)]
        assert engine.identify_churn_factors(records, now) == []

    def test_unresolved_urgent_issues_are_critical(self, engine, make_feedback, now):
        records = [make_feedback(urgency="critical"), make_feedback(urgency="high")]

        factors = engine.identify_churn_factors(records, now)
        support = next(f for f in factors if f.type == ChurnFactorType.SUPPORT_ISSUES)

        assert support.severity == Severity.CRITICAL
        assert support.count == 2


# ============================================================================
# SCENARIOS
# ============================================================================

class TestScenarios:

    def test_negative_urgent_tenant_is_high_risk(self, engine, make_feedback, now):
        records = [
            make_feedback(
                days_ago=i + 1,
                sentiment="negative" if i < 8 else "positive",
                urgency="high" if i < 3 else "low",
                is_resolved=False,
            )
            for i in range(10)
        ]

        assessment = engine.compute_risk(records, now=now)

        assert assessment.risk_score >= 60
        assert assessment.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        assert {ChurnFactorType.NEGATIVE_SENTIMENT, ChurnFactorType.SUPPORT_ISSUES} <= factor_types(assessment)

    def test_happy_tenant_is_low_risk(self, engine, make_feedback, now):
        records = [
            make_feedback(days_ago=day, sentiment="positive", categories=["praise"])
            for day in range(10)
        ]

        assessment = engine.compute_risk(records, now=now)

        assert assessment.risk_score == 50
        assert assessment.churn_factors == []

    def test_score_ignores_input_order(self, engine, make_feedback, now):
        records = [
            make_feedback(days_ago=60, sentiment="negative", categories=["complaint"]),
            make_feedback(days_ago=10, urgency="high", content="Bug in the export"),
            make_feedback(days_ago=2, content="Evaluating an alternative"),
            make_feedback(days_ago=25, sentiment="positive"),
        ]
        shuffled = list(reversed(records))

        first = engine.compute_risk(records, now=now)
        second = engine.compute_risk(shuffled, now=now)

        assert first.risk_score == second.risk_score
        assert factor_types(first) == factor_types(second)
        assert [r.id for r in records] == [1, 2, 3, 4]

    def test_metadata_echoes_request(self, engine, make_feedback, now):
        assessment = engine.compute_risk(
            [make_feedback()],
            now=now,
            time_range="30d",
            source="zendesk",
            customer_email="ada@example.com"
        )

        assert assessment.metadata.time_range == "30d"
        assert assessment.metadata.source == "zendesk"
        assert assessment.metadata.customer_email == "ada@example.com"
        assert assessment.metadata.analysis_date == now

    @pytest.mark.parametrize("window", ["not a list", None, 5, [1, 2]])
    def test_malformed_window(self, engine, window, now):
        with pytest.raises(InvalidWindow):
            engine.compute_risk(window, now=now)

    def test_dict_records_are_accepted(self, engine, now):
        window = [{
            "id": 7,
            "tenant_id": "tenant-1",
            "content": "Broken again",
            "sentiment": "negative",
            "urgency": "high",
            "categories": ["bug_report"],
            "source": "email",
            "created_at": now.isoformat(),
        }]

        assessment = engine.compute_risk(window, now=now)

        assert assessment.metadata.total_feedback == 1
        assert assessment.risk_score > 50


# ============================================================================
# CONFIGURATION
# ============================================================================

class TestConfiguration:

    def test_zero_weights_pin_score_to_baseline(self, make_feedback, now):
        flat = ChurnRiskEngine(RiskEngineConfig(
            weights=RiskWeights(sentiment=0, engagement=0, support=0, feature=0, competitor=0)
        ))
        records = [make_feedback(sentiment="negative", urgency="critical") for _ in range(4)]

        assert flat.compute_risk(records, now=now).risk_score == 50

    def test_custom_keywords(self, make_feedback, now):
        engine = ChurnRiskEngine(RiskEngineConfig(competitor_keywords=("acme",)))
        records = [make_feedback(content="Acme has this feature")]

        assert engine.calculate_competitor_risk(records) == 15

    def test_config_is_immutable(self):
        config = RiskEngineConfig()
        with pytest.raises(Exception):
            config.baseline_score = 10


# ============================================================================
# DETAILED ANALYSIS
# ============================================================================

class TestDetails:

    def test_details_can_be_omitted(self, engine, make_feedback, now):
        assessment = engine.compute_risk([make_feedback()], now=now, include_details=False)
        assert assessment.details is None

    def test_details_content(self, engine, make_feedback, now):
        records = [
            make_feedback(days_ago=9, sentiment="positive"),
            make_feedback(days_ago=6, sentiment="positive"),
            make_feedback(days_ago=3, sentiment="negative", urgency="high", is_resolved=True),
            make_feedback(days_ago=0, sentiment="negative", urgency="critical",
                          categories=["feature_request"]),
        ]

        details = engine.compute_risk(records, now=now).details

        assert len(details.sentiment_trend.trends) == 3
        assert details.sentiment_trend.is_declining
        assert details.engagement_pattern.average_gap_days == pytest.approx(3.0)
        assert details.engagement_pattern.recent_activity
        assert not details.engagement_pattern.has_long_gaps
        assert details.support_history.total_issues == 2
        assert details.support_history.unresolved_issues == 1
        assert details.support_history.resolution_rate == pytest.approx(0.5)
        assert details.feature_requests.feature_requests == 1
        assert details.feature_requests.ratio == pytest.approx(0.25)

    def test_resolution_rate_without_issues(self, engine, make_feedback, now):
        details = engine.compute_risk([make_feedback()], now=now).details
        assert details.support_history.resolution_rate == 1.0

    @pytest.mark.parametrize("score,first_priority", [
        (90, "critical"),
        (70, "high"),
        (50, "medium"),
        (10, "low"),
    ])
    def test_recommendations_by_band(self, engine, score, first_priority):
        assert engine.generate_recommendations(score)[0].priority == first_priority


# ============================================================================
# CATALOGS
# ============================================================================

class TestCatalogs:

    def test_risk_levels_in_order(self):
        assert [info.id for info in risk_level_catalog()] == list(RiskLevel)

    def test_factor_weights_are_percentages(self):
        catalog = churn_factor_catalog()

        assert sum(info.weight for info in catalog) == 100
        weights = {info.id: info.weight for info in catalog}
        assert weights[ChurnFactorType.NEGATIVE_SENTIMENT] == 30
        assert weights[ChurnFactorType.COMPETITOR_MENTIONS] == 10
