"""Orchestration: fetch a tenant's feedback window, run the engines, cache results."""
import logging
from datetime import datetime
from typing import Optional

from alerting import AlertService
from cache import CacheKey, ResultCache
from config import config
from database import FeedbackWindowProvider
from errors import DataUnavailable
from risk_engine import ChurnRiskEngine
from schemas import (
    RiskAssessment,
    RiskOptions,
    SegmentOptions,
    SegmentType,
    SegmentationMetadata,
    SegmentationResult,
)
from segmentation import SegmentationClassifier

logger = logging.getLogger(__name__)

TENANT_RISK_SCOPE = "-"


class FeedbackAnalyticsService:
    """Churn risk and segmentation for tenants.

    Each request does exactly one window fetch; the engines then run
    synchronously over the fetched records and never write back.
    """

    def __init__(
        self,
        provider: FeedbackWindowProvider,
        risk_engine: Optional[ChurnRiskEngine] = None,
        classifier: Optional[SegmentationClassifier] = None,
        cache: Optional[ResultCache] = None,
        cache_enabled: Optional[bool] = None
    ):
        self.provider = provider
        self.risk_engine = risk_engine or ChurnRiskEngine()
        self.classifier = classifier or SegmentationClassifier()
        self.cache = cache or ResultCache()
        self.cache_enabled = config.CACHE_ENABLED if cache_enabled is None else cache_enabled

    async def compute_churn_risk(
        self,
        tenant_id: str,
        options: Optional[RiskOptions] = None,
        now: Optional[datetime] = None,
        alerts: Optional[AlertService] = None
    ) -> RiskAssessment:
        """Churn risk for a tenant, or for one of its customers.

        Args:
            tenant_id: Tenant whose feedback is scored
            options: Time range, source filter, detail flag and optional customer
            now: Reference time for the window cutoff and recency rules
            alerts: Alert service notified when a fresh assessment warrants it.
                Cached assessments never alert again.

        Returns:
            RiskAssessment (details omitted unless requested)

        Raises:
            DataUnavailable: If the feedback window could not be fetched
        """
        options = options or RiskOptions()
        scope = f"customer:{options.customer_email}" if options.customer_email else TENANT_RISK_SCOPE
        key = CacheKey(tenant_id, scope, options.time_range.value, options.source)

        assessment = self._cached(key, RiskAssessment)
        if assessment is None:
            window = await self._fetch(
                tenant_id,
                options.time_range,
                options.source,
                customer_email=options.customer_email,
                now=now
            )
            assessment = self.risk_engine.compute_risk(
                window,
                now=now,
                time_range=options.time_range.value,
                source=options.source,
                customer_email=options.customer_email,
                include_details=True
            )
            logger.info(
                f"Churn risk for tenant {tenant_id} ({scope}): "
                f"{assessment.risk_score:.1f} {assessment.risk_level.value} "
                f"over {assessment.metadata.total_feedback} items"
            )
            if self.cache_enabled:
                self.cache.set(key, assessment)
            if alerts is not None and alerts.should_alert(assessment):
                await alerts.send_risk_alert(tenant_id, assessment, options.customer_email)

        if not options.include_details:
            assessment = assessment.model_copy(update={"details": None})
        return assessment

    async def classify_segments(
        self,
        tenant_id: str,
        segment_type: str,
        options: Optional[SegmentOptions] = None,
        now: Optional[datetime] = None
    ) -> SegmentationResult:
        """Segment a tenant's feedback window by one segment type.

        Raises:
            UnknownSegmentType: If the segment type has no catalog (checked before fetching)
            DataUnavailable: If the feedback window could not be fetched
        """
        options = options or SegmentOptions()
        self.classifier.definitions_for(segment_type)
        segment_type = SegmentType(segment_type)

        key = CacheKey(
            tenant_id, segment_type.value, options.time_range.value, options.source, options.limit
        )

        result = self._cached(key, SegmentationResult)
        if result is None:
            window = await self._fetch(
                tenant_id, options.time_range, options.source, limit=options.limit, now=now
            )
            segments = self.classifier.classify(window, segment_type, now=now)
            result = SegmentationResult(
                segment_type=segment_type,
                segments=segments,
                metadata=SegmentationMetadata(
                    total_feedback=len(window),
                    time_range=options.time_range.value,
                    source=options.source,
                    segment_count=len(segments)
                )
            )
            logger.info(
                f"Segmented {len(window)} items for tenant {tenant_id} "
                f"into {len(segments)} {segment_type.value} segments"
            )
            if self.cache_enabled:
                self.cache.set(key, result)

        if not options.include_metadata:
            result = result.model_copy(update={"metadata": None})
        return result

    def _cached(self, key: CacheKey, result_type):
        if not self.cache_enabled:
            return None
        cached = self.cache.get(key, result_type)
        if cached is not None:
            logger.info(f"Cache hit for {key.scope} analysis of tenant {key.tenant_id}")
        return cached

    async def _fetch(self, tenant_id, time_range, source, limit=None, customer_email=None, now=None):
        try:
            return await self.provider.fetch(
                tenant_id,
                time_range,
                source=source,
                limit=limit,
                customer_email=customer_email,
                now=now
            )
        except DataUnavailable as e:
            logger.warning(f"Feedback window unavailable for tenant {tenant_id}: {e}")
            raise
