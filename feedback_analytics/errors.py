"""Error types raised by the analytics engines and the window provider."""
from typing import Iterable


class FeedbackAnalyticsError(Exception):
    """Base class for all analytics errors."""


class DataUnavailable(FeedbackAnalyticsError):
    """The feedback window could not be fetched."""


class InvalidWindow(FeedbackAnalyticsError):
    """The supplied feedback window has the wrong shape."""


class UnknownSegmentType(FeedbackAnalyticsError):
    """No segment catalog exists for the requested type."""

    def __init__(self, segment_type: str):
        self.segment_type = segment_type
        super().__init__(f"Unknown segment type: {segment_type}")


class SegmentNotFound(FeedbackAnalyticsError):
    """None of the requested segments matched any feedback."""

    def __init__(self, segment_type: str, segment_ids: Iterable[str]):
        self.segment_type = segment_type
        self.segment_ids = list(segment_ids)
        super().__init__(
            f"No matching {segment_type} segments: {', '.join(self.segment_ids)}"
        )
