"""SQLAlchemy ORM models for batch score update jobs."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, DateTime, ForeignKey, Integer, Text, Uuid
)
from sqlalchemy.orm import relationship

from credit_oracle.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchJob(Base):
    """A batch of addresses submitted for sequential score updates."""
    __tablename__ = "batch_job"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    status = Column(Text, nullable=False, default="running")  # running, completed
    item_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True))

    items = relationship(
        "BatchItem",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="BatchItem.position",
    )


class BatchItem(Base):
    """Outcome of one address within a batch job."""
    __tablename__ = "batch_item"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id = Column(Uuid, ForeignKey("batch_job.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    address = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # pending, succeeded, failed
    score = Column(Integer)
    tx_hash = Column(Text)
    error_kind = Column(Text)
    error = Column(Text)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    job = relationship("BatchJob", back_populates="items")
