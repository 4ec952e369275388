"""Shared fixtures for the feedback analytics test suite."""
import itertools
from datetime import datetime, timedelta, UTC

import pytest

from schemas import FeedbackRecord

REFERENCE_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def now():
    """Fixed analysis time so recency rules are deterministic."""
    return REFERENCE_NOW


@pytest.fixture
def make_feedback(now):
    """Factory for feedback records created a number of days before `now`."""
    ids = itertools.count(1)

    def _make(
        days_ago: float = 1,
        sentiment: str = "neutral",
        urgency: str = "low",
        categories=(),
        content: str = "Feedback about the dashboard",
        source: str = "email",
        customer_email=None,
        is_resolved: bool = False,
        tenant_id: str = "tenant-1",
        reference=None,
    ) -> FeedbackRecord:
        return FeedbackRecord(
            id=next(ids),
            tenant_id=tenant_id,
            content=content,
            sentiment=sentiment,
            urgency=urgency,
            categories=tuple(categories),
            source=source,
            customer_email=customer_email,
            created_at=(reference or now) - timedelta(days=days_ago),
            is_resolved=is_resolved,
        )

    return _make
