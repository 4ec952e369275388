"""Database connection, feedback storage and the feedback window provider."""
import logging
from datetime import datetime, timedelta, UTC
from typing import List, Optional, Protocol
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
)
from sqlalchemy.pool import StaticPool
from config import config
from errors import DataUnavailable
from models import Base, Feedback
from schemas import FeedbackCreate, FeedbackRecord, TimeRange

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite gets a StaticPool so in-memory databases survive across sessions
    and connections can be shared between threads.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False
        )
    return create_async_engine(database_url, echo=False)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(config.DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None):
    """Initialize database tables."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        yield session


async def save_feedback(
    db: AsyncSession,
    tenant_id: str,
    payload: FeedbackCreate
) -> Feedback:
    """Save an already-tagged feedback item.

    Args:
        db: Database session
        tenant_id: Owning tenant
        payload: Feedback content and tags

    Returns:
        Saved Feedback model
    """
    created_at = payload.created_at or datetime.now(UTC)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)

    feedback = Feedback(
        tenant_id=tenant_id,
        content=payload.content,
        sentiment=payload.sentiment.value,
        urgency=payload.urgency.value,
        categories=list(dict.fromkeys(payload.categories)),
        source=payload.source,
        customer_email=payload.customer_email,
        is_resolved=payload.is_resolved,
        created_at=created_at.astimezone(UTC)
    )

    db.add(feedback)
    await db.commit()
    await db.refresh(feedback)

    return feedback


async def fetch_feedback_window(
    db: AsyncSession,
    tenant_id: str,
    time_range: TimeRange,
    source: str = "all",
    limit: Optional[int] = None,
    customer_email: Optional[str] = None,
    now: Optional[datetime] = None
) -> List[FeedbackRecord]:
    """Load one tenant's feedback window, newest first.

    Args:
        db: Database session
        tenant_id: Tenant whose feedback is read
        time_range: Lookback window; items older than now minus the range are skipped
        source: Exact source to keep, or "all"
        limit: Maximum number of items to return
        customer_email: Restrict to a single customer
        now: Reference time for the cutoff (defaults to the current UTC time)

    Returns:
        Feedback records ordered by created_at descending

    Raises:
        DataUnavailable: If the query fails
    """
    cutoff = (now or datetime.now(UTC)) - timedelta(days=TimeRange(time_range).days)

    query = select(Feedback).where(
        Feedback.tenant_id == tenant_id,
        Feedback.created_at >= cutoff
    )
    if source and source != "all":
        query = query.where(Feedback.source == source)
    if customer_email:
        query = query.where(Feedback.customer_email == customer_email)
    query = query.order_by(Feedback.created_at.desc(), Feedback.id.desc())
    if limit:
        query = query.limit(limit)

    try:
        result = await db.execute(query)
        rows = result.scalars().all()
    except SQLAlchemyError as e:
        raise DataUnavailable(f"Failed to load feedback for tenant {tenant_id}: {e}") from e

    return [row.to_record() for row in rows]


class FeedbackWindowProvider(Protocol):
    """Source of tenant-scoped feedback windows."""

    async def fetch(
        self,
        tenant_id: str,
        time_range: TimeRange,
        source: str = "all",
        limit: Optional[int] = None,
        customer_email: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[FeedbackRecord]:
        ...


class DatabaseWindowProvider:
    """Feedback window provider backed by the SQL feedback table."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def fetch(
        self,
        tenant_id: str,
        time_range: TimeRange,
        source: str = "all",
        limit: Optional[int] = None,
        customer_email: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[FeedbackRecord]:
        try:
            async with self.session_factory() as session:
                return await fetch_feedback_window(
                    session,
                    tenant_id,
                    time_range,
                    source=source,
                    limit=limit,
                    customer_email=customer_email,
                    now=now
                )
        except SQLAlchemyError as e:
            raise DataUnavailable(f"Database unavailable: {e}") from e
