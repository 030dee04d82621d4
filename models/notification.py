from sqlalchemy import Column, Integer, String, Text, DateTime, func
from db.session import Base
from utils.dates import utcnow

class AdminNotification(Base):
    """Broadcast log, one row per admin announcement."""

    __tablename__ = "admin_notifications"

    id = Column(Integer, primary_key=True, index=True)
    created_by = Column(String, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    audience = Column(String, nullable=False, default="all")
    status = Column(String, nullable=False, default="sent")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)

class UserNotification(Base):
    __tablename__ = "user_notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
