from sqlalchemy import Column, Integer, String, Date, DateTime, UniqueConstraint, func
from db.session import Base
from core.config import settings
from utils.dates import utcnow

class UserCredit(Base):
    """Free monthly quota and how much of it has been used."""

    __tablename__ = "user_credits"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    month_start = Column(Date, nullable=False)
    monthly_quota = Column(Integer, nullable=False, default=settings.CREDIT_LIMIT_MONTHLY)
    used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'month_start', name='uq_user_credits_month'),
    )
