from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON, func
from db.session import Base
from utils.dates import utcnow
import enum

class UsageStatus(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"

class UsageEvent(Base):
    """Append-only record of one tool invocation."""

    __tablename__ = "usage_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    tool = Column(String, nullable=False)
    action = Column(String, nullable=False, default="run")
    status = Column(
        Enum(UsageStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
    )
    credits = Column(Integer, nullable=False, default=0)
    meta = Column(JSON, nullable=False, default=dict)
    generation_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)

class UserUsageTotal(Base):
    """Lifetime credits charged, kept in step with every charge and refund."""

    __tablename__ = "user_usage_totals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    credits_used = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
