"""Database models for feedback storage."""
from datetime import datetime, UTC
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, Index
from sqlalchemy.orm import declarative_base

from schemas import FeedbackRecord

Base = declarative_base()


class Feedback(Base):
    """Feedback database model."""

    __tablename__ = "feedback"
    __table_args__ = (
        Index("ix_feedback_tenant_created", "tenant_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    sentiment = Column(String(20), nullable=False)  # positive, negative, neutral, mixed
    urgency = Column(String(20), nullable=False, default="low")  # low, medium, high, critical
    categories = Column(JSON, nullable=False, default=list)
    source = Column(String(50), nullable=False)
    customer_email = Column(String(255), nullable=True, index=True)
    is_resolved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def to_record(self) -> FeedbackRecord:
        """Convert the row into the read-only record the engines consume."""
        return FeedbackRecord.model_validate(self)
