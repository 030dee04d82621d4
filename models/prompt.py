from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, func
from db.session import Base
from utils.dates import utcnow

class ScriptPrompt(Base):
    __tablename__ = "script_prompts"

    id = Column(Integer, primary_key=True, index=True)
    niche = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    prompt_text = Column(Text, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    user_id = Column(String, nullable=True)  # admin who created it
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
