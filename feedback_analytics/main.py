"""Main FastAPI application for feedback churn risk and segmentation analytics."""
import logging
from contextlib import asynccontextmanager
from typing import List
import uvicorn
from fastapi import FastAPI, Depends, HTTPException, Header, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from alerting import AlertService
from config import config
from database import DatabaseWindowProvider, init_db, get_db, save_feedback
from errors import DataUnavailable, InvalidWindow, SegmentNotFound, UnknownSegmentType
from risk_engine import churn_factor_catalog, risk_level_catalog
from schemas import (
    ChurnFactorInfo,
    CompareSegmentsRequest,
    FeedbackCreate,
    FeedbackRecord,
    RiskAssessment,
    RiskLevelInfo,
    RiskOptions,
    RiskRecommendations,
    SegmentComparison,
    SegmentOptions,
    SegmentType,
    SegmentTypeInfo,
    SegmentationResult,
    TimeRange,
)
from segment_catalog import segment_type_info
from segmentation import compare_segments, find_segment, segment_analytics, summarize_insights
from service import FeedbackAnalyticsService

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize services
analytics_service = FeedbackAnalyticsService(DatabaseWindowProvider())
alert_service = AlertService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Initializing database...")
    await init_db()
    logger.info("Application started successfully")
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Customer Feedback Analytics API",
    description="Churn risk scoring and feedback segmentation for multi-tenant feedback data",
    version="1.0.0",
    lifespan=lifespan
)


async def verify_api_key(x_api_key: str = Header(...)) -> None:
    """Verify API key authentication.

    Stubbed authentication: a single shared key from config.
    """
    if x_api_key != config.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )


async def get_tenant_id(x_tenant_id: str = Header(..., min_length=1, max_length=64)) -> str:
    return x_tenant_id


def get_analytics_service() -> FeedbackAnalyticsService:
    return analytics_service


def get_alert_service() -> AlertService:
    return alert_service


def segment_options(
    time_range: TimeRange = Query(TimeRange.THIRTY_DAYS),
    source: str = Query("all", min_length=1),
    limit: int = Query(config.DEFAULT_SEGMENT_LIMIT, ge=10, le=config.MAX_SEGMENT_LIMIT),
    include_metadata: bool = Query(True)
) -> SegmentOptions:
    return SegmentOptions(
        time_range=time_range,
        source=source,
        limit=limit,
        include_metadata=include_metadata
    )


# ============================================================================
# FEEDBACK
# ============================================================================

@app.post("/feedback", response_model=FeedbackRecord, status_code=status.HTTP_201_CREATED)
async def create_feedback(
    request: FeedbackCreate,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _: None = Depends(verify_api_key)
):
    """Store a feedback item that has already been sentiment-tagged."""
    feedback = await save_feedback(db, tenant_id, request)
    logger.info(f"Stored feedback {feedback.id} for tenant {tenant_id}")
    return feedback.to_record()


# ============================================================================
# CHURN RISK
# ============================================================================

async def _churn_risk(
    tenant_id: str,
    options: RiskOptions,
    service: FeedbackAnalyticsService,
    alerts: AlertService
) -> RiskAssessment:
    return await service.compute_churn_risk(tenant_id, options, alerts=alerts)


@app.get("/churn/risk", response_model=RiskAssessment)
async def get_churn_risk(
    time_range: TimeRange = Query(TimeRange.NINETY_DAYS),
    source: str = Query("all", min_length=1),
    include_details: bool = Query(True),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    alerts: AlertService = Depends(get_alert_service),
    _: None = Depends(verify_api_key)
):
    """Churn risk across all of the tenant's feedback."""
    options = RiskOptions(time_range=time_range, source=source, include_details=include_details)
    return await _churn_risk(tenant_id, options, service, alerts)


@app.get("/churn/customer/{email}", response_model=RiskAssessment)
async def get_customer_churn_risk(
    email: str,
    time_range: TimeRange = Query(TimeRange.NINETY_DAYS),
    source: str = Query("all", min_length=1),
    include_details: bool = Query(True),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    alerts: AlertService = Depends(get_alert_service),
    _: None = Depends(verify_api_key)
):
    """Churn risk for one customer of the tenant."""
    options = RiskOptions(
        time_range=time_range,
        source=source,
        include_details=include_details,
        customer_email=email
    )
    return await _churn_risk(tenant_id, options, service, alerts)


@app.get("/churn/risk-levels", response_model=List[RiskLevelInfo])
async def get_risk_levels(_: None = Depends(verify_api_key)):
    return risk_level_catalog()


@app.get("/churn/factors", response_model=List[ChurnFactorInfo])
async def get_churn_factors(
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    return churn_factor_catalog(service.risk_engine.config)


@app.get("/churn/recommendations", response_model=RiskRecommendations)
async def get_churn_recommendations(
    time_range: TimeRange = Query(TimeRange.NINETY_DAYS),
    source: str = Query("all", min_length=1),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    """Churn prevention recommendations grouped by priority."""
    assessment = await service.compute_churn_risk(
        tenant_id,
        RiskOptions(time_range=time_range, source=source, include_details=True)
    )
    recommendations = assessment.details.recommendations if assessment.details else []

    def by_priority(priority: str):
        return [r for r in recommendations if r.priority == priority]

    return RiskRecommendations(
        immediate=by_priority("critical"),
        high=by_priority("high"),
        medium=by_priority("medium"),
        low=by_priority("low"),
        risk_level=assessment.risk_level,
        risk_score=assessment.risk_score
    )


# ============================================================================
# SEGMENTATION
# ============================================================================

@app.get("/segments/types", response_model=List[SegmentTypeInfo])
async def get_segment_types(
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    return [segment_type_info(segment_type) for segment_type in service.classifier.segment_types()]


@app.get("/segments/types/{segment_type}", response_model=SegmentTypeInfo)
async def get_segment_type(
    segment_type: str,
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    service.classifier.definitions_for(segment_type)
    return segment_type_info(SegmentType(segment_type))


@app.post("/segments/compare", response_model=SegmentComparison)
async def post_compare_segments(
    request: CompareSegmentsRequest,
    time_range: TimeRange = Query(TimeRange.THIRTY_DAYS),
    source: str = Query("all", min_length=1),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    """Compare selected segments of one segment type."""
    result = await service.classify_segments(
        tenant_id,
        request.segment_type,
        SegmentOptions(time_range=time_range, source=source, limit=config.MAX_SEGMENT_LIMIT)
    )
    return compare_segments(result, request.segment_ids)


@app.get("/segments/{segment_type}", response_model=SegmentationResult)
async def get_segments(
    segment_type: str,
    options: SegmentOptions = Depends(segment_options),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    """Segment the tenant's feedback by the given segment type."""
    return await service.classify_segments(tenant_id, segment_type, options)


@app.get("/segments/{segment_type}/insights")
async def get_segment_insights(
    segment_type: str,
    time_range: TimeRange = Query(TimeRange.THIRTY_DAYS),
    source: str = Query("all", min_length=1),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    result = await service.classify_segments(
        tenant_id,
        segment_type,
        SegmentOptions(time_range=time_range, source=source, limit=config.MAX_SEGMENT_LIMIT)
    )
    return {
        "segment_type": result.segment_type,
        "insights": summarize_insights(result.segments, result.segment_type),
        "metadata": result.metadata
    }


@app.get("/segments/{segment_type}/analytics")
async def get_segment_analytics(
    segment_type: str,
    time_range: TimeRange = Query(TimeRange.THIRTY_DAYS),
    source: str = Query("all", min_length=1),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    result = await service.classify_segments(
        tenant_id,
        segment_type,
        SegmentOptions(time_range=time_range, source=source, limit=config.MAX_SEGMENT_LIMIT)
    )
    return {
        "segment_type": result.segment_type,
        "analytics": segment_analytics(result.segments, result.metadata.total_feedback),
        "metadata": result.metadata
    }


@app.get("/segments/{segment_type}/{segment_id}")
async def get_segment_details(
    segment_type: str,
    segment_id: str,
    time_range: TimeRange = Query(TimeRange.THIRTY_DAYS),
    source: str = Query("all", min_length=1),
    include_feedback: bool = Query(False),
    tenant_id: str = Depends(get_tenant_id),
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    _: None = Depends(verify_api_key)
):
    """One segment of a classification, without its feedback unless asked."""
    result = await service.classify_segments(
        tenant_id,
        segment_type,
        SegmentOptions(time_range=time_range, source=source, limit=config.MAX_SEGMENT_LIMIT)
    )
    segment = find_segment(result, segment_id)
    if not include_feedback:
        segment = segment.model_copy(update={"matching_feedback": None})

    return {
        "segment_type": result.segment_type,
        "segment": segment,
        "metadata": result.metadata
    }


# ============================================================================
# SYSTEM
# ============================================================================

@app.get("/health")
async def health_check(
    service: FeedbackAnalyticsService = Depends(get_analytics_service),
    alerts: AlertService = Depends(get_alert_service)
):
    """Health check endpoint.

    Returns system status including cache stats.
    """
    return {
        "status": "healthy",
        "alerts_enabled": alerts.enabled,
        "cache_stats": service.cache.get_stats()
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Customer Feedback Analytics API",
        "version": "1.0.0",
        "endpoints": {
            "store_feedback": "POST /feedback",
            "churn_risk": "GET /churn/risk",
            "customer_churn_risk": "GET /churn/customer/{email}",
            "segments": "GET /segments/{segment_type}",
            "segment_insights": "GET /segments/{segment_type}/insights",
            "compare_segments": "POST /segments/compare",
            "health": "GET /health"
        }
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(UnknownSegmentType)
async def unknown_segment_type_handler(request, exc: UnknownSegmentType):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "code": "SEGMENT_TYPE_NOT_FOUND"}
    )


@app.exception_handler(SegmentNotFound)
async def segment_not_found_handler(request, exc: SegmentNotFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "code": "SEGMENT_NOT_FOUND"}
    )


@app.exception_handler(InvalidWindow)
async def invalid_window_handler(request, exc: InvalidWindow):
    logger.error(f"Invalid feedback window: {exc}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "code": "INVALID_WINDOW"}
    )


@app.exception_handler(DataUnavailable)
async def data_unavailable_handler(request, exc: DataUnavailable):
    logger.error(f"Feedback data unavailable: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Feedback data temporarily unavailable", "code": "DATA_UNAVAILABLE"}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unexpected errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


def run():
    """Serve the API with uvicorn."""
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
