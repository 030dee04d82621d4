from sqlalchemy import Column, Integer, Float, String, DateTime, func
from db.session import Base
from utils.dates import utcnow

class UserWallet(Base):
    """Paid credit balance. Created lazily on first approved top-up."""

    __tablename__ = "user_wallet"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    balance = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
