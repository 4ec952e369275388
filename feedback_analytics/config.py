"""Configuration management for the feedback analytics service."""
import os
from typing import Tuple
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()


class Config:
    """Application configuration."""

    # API Configuration
    API_KEY = os.getenv("API_KEY", "test-api-key-12345")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "8000"))

    # Database Configuration
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./feedback_analytics.db")

    # Cache Configuration
    CACHE_ENABLED = os.getenv("CACHE_ENABLED", "true").lower() == "true"
    CACHE_MAX_SIZE = int(os.getenv("CACHE_MAX_SIZE", "1000"))
    CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "300"))

    # Alert Configuration
    ALERT_WEBHOOK_URL = os.getenv("ALERT_WEBHOOK_URL", "")
    ALERT_ENABLED = os.getenv("ALERT_ENABLED", "false").lower() == "true"
    ALERT_RISK_LEVELS = [
        level.strip()
        for level in os.getenv("ALERT_RISK_LEVELS", "high,critical").split(",")
        if level.strip()
    ]

    # Segmentation window limits
    DEFAULT_SEGMENT_LIMIT = int(os.getenv("DEFAULT_SEGMENT_LIMIT", "1000"))
    MAX_SEGMENT_LIMIT = int(os.getenv("MAX_SEGMENT_LIMIT", "10000"))


config = Config()


class RiskWeights(BaseModel):
    """Share of each component sub-score added to the baseline."""

    model_config = ConfigDict(frozen=True)

    sentiment: float = 0.30
    engagement: float = 0.25
    support: float = 0.20
    feature: float = 0.15
    competitor: float = 0.10


class RiskThresholds(BaseModel):
    """Lower bounds (inclusive) of each risk level."""

    model_config = ConfigDict(frozen=True)

    critical: float = 80
    high: float = 60
    medium: float = 40


class RiskEngineConfig(BaseModel):
    """Calibration constants for churn risk scoring.

    These values are product calibration choices. Change them only together
    with a documented product decision.
    """

    model_config = ConfigDict(frozen=True)

    baseline_score: float = 50
    weights: RiskWeights = RiskWeights()
    thresholds: RiskThresholds = RiskThresholds()

    recent_days: int = 30
    gap_days: float = 30
    bucket_count: int = 3
    component_cap: float = 50

    # Sentiment
    negative_ratio_points: float = 50
    recent_negative_points: float = 30

    # Engagement
    decline_points: float = 20
    silence_points: float = 40
    gap_points: float = 25

    # Support
    support_keyword_points: float = 10
    urgent_keyword_points: float = 20
    high_urgency_points: float = 15
    support_keywords: Tuple[str, ...] = (
        "help", "support", "issue", "problem", "bug", "error", "broken", "not working"
    )
    urgent_keywords: Tuple[str, ...] = (
        "urgent", "critical", "emergency", "asap", "immediately"
    )

    # Feature requests vs complaints
    complaint_ratio_threshold: float = 0.3
    complaint_ratio_points: float = 30
    feature_ratio_threshold: float = 0.5
    feature_ratio_points: float = 15
    unresolved_complaint_points: float = 10
    complaint_categories: Tuple[str, ...] = ("complaint", "bug_report")
    feature_request_category: str = "feature_request"

    # Competitor mentions
    competitor_points: float = 15
    competitor_keywords: Tuple[str, ...] = (
        "competitor", "alternative", "better", "switch", "migration",
        "other tool", "different platform", "considering", "evaluating"
    )
    competitor_factor_keywords: Tuple[str, ...] = ("competitor", "alternative")

    # Retention probability
    high_risk_retention_factor: float = 0.8
    low_risk_retention_score: float = 20
    low_risk_retention_factor: float = 1.2

    # Detailed analysis
    recent_activity_days: int = 7


DEFAULT_RISK_CONFIG = RiskEngineConfig()
