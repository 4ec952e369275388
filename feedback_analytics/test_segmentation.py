"""Tests for the segment catalog and the segmentation classifier."""
import pytest

from errors import InvalidWindow, SegmentNotFound, UnknownSegmentType
from schemas import SegmentType, SegmentationResult
from segment_catalog import (
    SEGMENT_CATALOG,
    CategoryMembership,
    SegmentDefinition,
    UrgencySet,
    segment_type_info,
)
from segmentation import (
    SegmentationClassifier,
    compare_segments,
    find_segment,
    segment_analytics,
    summarize_insights,
)


@pytest.fixture
def classifier():
    return SegmentationClassifier()


def segment_ids(segments):
    return [segment.id for segment in segments]


@pytest.fixture
def geographic_window(make_feedback):
    return [
        make_feedback(categories=["feature_request"], sentiment="positive", source="email"),
        make_feedback(categories=["integration"], sentiment="positive", source="email"),
        make_feedback(categories=["feature_request"], sentiment="neutral", source="zendesk"),
        make_feedback(categories=["localization"], sentiment="negative", urgency="high"),
        make_feedback(categories=["localization"], sentiment="negative"),
        make_feedback(categories=["payment"], sentiment="negative", urgency="critical"),
    ]


# ============================================================================
# PERSONA RULES
# ============================================================================

class TestPersonas:

    def test_power_user_needs_five_items(self, classifier, make_feedback, now):
        window = (
            [make_feedback(customer_email="a@example.com", sentiment="positive",
                           categories=["feature_request"]) for _ in range(4)]
            + [make_feedback(customer_email="b@example.com", sentiment="positive",
                             categories=["improvement"]) for _ in range(3)]
        )

        segments = classifier.classify(window, "persona", now=now)

        assert "powerUser" not in segment_ids(segments)

    def test_two_items_never_make_a_power_user(self, classifier, make_feedback, now):
        window = [
            make_feedback(customer_email="c@example.com", sentiment="positive",
                          categories=["feature_request"]),
            make_feedback(customer_email="c@example.com", sentiment="positive",
                          categories=["bug_report"]),
        ]

        segments = classifier.classify(window, "persona", now=now)

        assert "powerUser" not in segment_ids(segments)

    def test_power_user(self, classifier, make_feedback, now):
        window = [
            make_feedback(customer_email="d@example.com", sentiment="positive",
                          categories=["feature_request"])
            for _ in range(5)
        ]

        segments = classifier.classify(window, "persona", now=now)
        power = find_segment(SegmentationResult(segment_type="persona", segments=segments), "powerUser")

        assert power.stats.count == 5
        assert power.stats.percentage == 100

    def test_customer_sentiment_spans_all_their_items(self, classifier, make_feedback, now):
        mixed = [
            make_feedback(customer_email="mixed@example.com", sentiment="negative",
                          urgency="high", categories=["complaint"]),
            make_feedback(customer_email="mixed@example.com", sentiment="positive",
                          categories=["general"]),
        ]
        unhappy = [
            make_feedback(customer_email="unhappy@example.com", sentiment="negative",
                          urgency="high", categories=["complaint"]),
            make_feedback(customer_email="unhappy@example.com", sentiment="negative",
                          categories=["general"]),
        ]

        segments = classifier.classify(mixed + unhappy, "persona", now=now)
        frustrated = next(s for s in segments if s.id == "frustratedUser")

        assert [r.id for r in frustrated.matching_feedback] == [unhappy[0].id]

    def test_anonymous_items_form_one_customer(self, classifier, make_feedback, now):
        window = [
            make_feedback(customer_email=None, sentiment="positive", categories=["feature_request"])
            for _ in range(5)
        ]

        segments = classifier.classify(window, "persona", now=now)

        assert "powerUser" in segment_ids(segments)


# ============================================================================
# CLASSIFICATION CONTRACT
# ============================================================================

class TestClassification:

    def test_one_item_can_join_several_segments(self, classifier, make_feedback, now):
        window = [make_feedback(customer_email="new@example.com", categories=["question", "onboarding"])]

        segments = classifier.classify(window, "persona", now=now)

        assert segment_ids(segments) == ["casualUser", "newUser"]
        assert sum(s.stats.count for s in segments) > len(window)

    def test_sorted_by_count_with_catalog_order_for_ties(self, classifier, geographic_window, now):
        segments = classifier.classify(geographic_window, "geographic", now=now)

        assert segment_ids(segments) == ["northAmerica", "asiaPacific", "europe"]
        counts = [s.stats.count for s in segments]
        assert counts == sorted(counts, reverse=True)
        assert all(count > 0 for count in counts)

    def test_empty_segments_are_omitted(self, classifier, make_feedback, now):
        window = [make_feedback(categories=["compliance"])]

        segments = classifier.classify(window, "geographic", now=now)

        assert segment_ids(segments) == ["europe"]

    def test_classification_is_deterministic(self, classifier, geographic_window, now):
        first = classifier.classify(geographic_window, "geographic", now=now)
        second = classifier.classify(geographic_window, "geographic", now=now)

        assert first == second

    def test_empty_window(self, classifier, now):
        for segment_type in SegmentType:
            assert classifier.classify([], segment_type, now=now) == []

    def test_segment_stats(self, classifier, geographic_window, now):
        segments = classifier.classify(geographic_window, "geographic", now=now)
        north_america = segments[0]
        stats = north_america.stats

        assert stats.count == 3
        assert stats.percentage == pytest.approx(50.0)
        assert stats.avg_sentiment == pytest.approx(2 / 3)
        assert stats.top_categories[0].category == "feature_request"
        assert stats.top_categories[0].count == 2
        assert [s.source for s in stats.top_sources] == ["email", "zendesk"]
        assert stats.urgency_distribution == {"low": 3, "medium": 0, "high": 0, "critical": 0}

    def test_behavior_content_length(self, classifier, make_feedback, now):
        window = [
            make_feedback(customer_email="vocal@example.com", content="x" * 120),
            *[make_feedback(customer_email="vocal@example.com", content="short") for _ in range(4)],
            make_feedback(customer_email="quiet@example.com", content="ok"),
        ]

        segments = {s.id: s for s in classifier.classify(window, "behavior", now=now)}

        assert segments["vocal"].stats.count == 1
        assert segments["silent"].stats.count == 1

    def test_temporal_recency(self, classifier, make_feedback, now):
        window = [
            make_feedback(days_ago=3, customer_email="a@example.com"),
            make_feedback(days_ago=20, customer_email="b@example.com"),
            make_feedback(days_ago=40, customer_email="c@example.com"),
        ]

        segments = classifier.classify(window, "temporal", now=now)

        assert segment_ids(segments) == ["active", "recent"]
        assert segments[0].stats.count == 2


# ============================================================================
# ERRORS
# ============================================================================

class TestErrors:

    def test_unknown_segment_type(self, classifier):
        with pytest.raises(UnknownSegmentType) as exc_info:
            classifier.classify([], "astrology")
        assert exc_info.value.segment_type == "astrology"

    def test_segment_type_is_checked_before_window(self, classifier):
        with pytest.raises(UnknownSegmentType):
            classifier.classify("not a window", "astrology")

    def test_malformed_window(self, classifier):
        with pytest.raises(InvalidWindow):
            classifier.classify({"id": 1}, "persona")

    def test_type_missing_from_custom_catalog(self):
        classifier = SegmentationClassifier({SegmentType.PERSONA: SEGMENT_CATALOG[SegmentType.PERSONA]})
        with pytest.raises(UnknownSegmentType):
            classifier.classify([], "lifecycle")


# ============================================================================
# CATALOG
# ============================================================================

class TestCatalog:

    def test_every_type_has_definitions(self):
        for segment_type in SegmentType:
            assert SEGMENT_CATALOG[segment_type]
            assert segment_type_info(segment_type).id == segment_type

    def test_definition_ids_are_unique_per_type(self):
        for definitions in SEGMENT_CATALOG.values():
            ids = [d.id for d in definitions]
            assert len(ids) == len(set(ids))

    def test_criteria_parse_from_tagged_dicts(self):
        definition = SegmentDefinition.model_validate({
            "id": "urgentBilling",
            "name": "Urgent Billing",
            "description": "Urgent billing feedback",
            "criteria": [
                {"kind": "urgency", "levels": ["high", "critical"]},
                {"kind": "categories", "categories": ["billing"]},
            ],
        })

        assert isinstance(definition.criteria[0], UrgencySet)
        assert isinstance(definition.criteria[1], CategoryMembership)

    def test_custom_catalog(self, make_feedback, now):
        classifier = SegmentationClassifier({
            SegmentType.PERSONA: (
                SegmentDefinition(id="everyone", name="Everyone", description="All feedback"),
            )
        })
        window = [make_feedback(), make_feedback()]

        segments = classifier.classify(window, "persona", now=now)

        assert segment_ids(segments) == ["everyone"]
        assert segments[0].stats.count == 2


# ============================================================================
# INSIGHTS, ANALYTICS & COMPARISON
# ============================================================================

class TestInsightsAndAnalytics:

    def test_no_segments_no_insights(self):
        assert summarize_insights([], "persona") == []

    def test_insights(self, classifier, geographic_window, now):
        segments = classifier.classify(geographic_window, "geographic", now=now)

        insights = {i.type: i for i in summarize_insights(segments, "geographic")}

        assert insights["largest_segment"].value == "North America"
        assert insights["most_positive"].value == "North America"
        assert insights["most_negative"].value == "Asia Pacific"
        assert insights["high_urgency"].count == 2

    def test_insights_for_unknown_type(self, classifier, geographic_window, now):
        segments = classifier.classify(geographic_window, "geographic", now=now)

        with pytest.raises(UnknownSegmentType) as exc_info:
            summarize_insights(segments, "astrology")
        assert exc_info.value.segment_type == "astrology"

    def test_neutral_segments_have_no_sentiment_insights(self, classifier, make_feedback, now):
        segments = classifier.classify([make_feedback(categories=["gdpr"])], "geographic", now=now)

        types = [i.type for i in summarize_insights(segments, "geographic")]

        assert types == ["largest_segment"]

    def test_analytics(self, classifier, geographic_window, now):
        segments = classifier.classify(geographic_window, "geographic", now=now)

        analytics = segment_analytics(segments, len(geographic_window))

        assert analytics.total_segments == 3
        assert analytics.average_segment_size == pytest.approx(2.0)
        assert analytics.top_segments[0].id == "northAmerica"
        assert analytics.sentiment_distribution == {"positive": 1, "neutral": 0, "negative": 2}

    def test_analytics_without_segments(self):
        analytics = segment_analytics([], 0)
        assert analytics.average_segment_size == 0
        assert analytics.total_segments == 0


class TestComparison:

    @pytest.fixture
    def result(self, classifier, geographic_window, now):
        return SegmentationResult(
            segment_type=SegmentType.GEOGRAPHIC,
            segments=classifier.classify(geographic_window, "geographic", now=now)
        )

    def test_compare(self, result):
        comparison = compare_segments(result, ["northAmerica", "europe"])

        assert segment_ids(comparison.segments) == ["northAmerica", "europe"]
        assert comparison.comparison.total_feedback == 5
        assert comparison.comparison.top_categories[0].category == "feature_request"

    def test_missing_ids_are_skipped(self, result):
        comparison = compare_segments(result, ["europe", "southPole"])
        assert segment_ids(comparison.segments) == ["europe"]

    def test_nothing_to_compare(self, result):
        with pytest.raises(SegmentNotFound):
            compare_segments(result, ["southPole"])

    def test_find_segment(self, result):
        assert find_segment(result, "europe").stats.count == 2
        with pytest.raises(SegmentNotFound):
            find_segment(result, "southPole")
