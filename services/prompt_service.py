from sqlalchemy.orm import Session
from typing import List, Optional
from core.exceptions import BadRequest, NotFound
from models.prompt import ScriptPrompt
from utils.dates import utcnow
import logging

logger = logging.getLogger(__name__)

class PromptService:
    @staticmethod
    def list_prompts(db: Session, niche: Optional[str] = None, limit: int = 200) -> List[ScriptPrompt]:
        query = db.query(ScriptPrompt)
        if niche:
            query = query.filter(ScriptPrompt.niche == niche)
        return query.order_by(ScriptPrompt.updated_at.desc(), ScriptPrompt.id.desc()).limit(limit).all()

    @staticmethod
    def active_prompt(db: Session, niche: Optional[str]) -> Optional[ScriptPrompt]:
        """Most recently edited active template for a niche."""
        if not niche:
            return None
        return db.query(ScriptPrompt).filter(
            ScriptPrompt.niche == niche,
            ScriptPrompt.active.is_(True),
        ).order_by(ScriptPrompt.updated_at.desc(), ScriptPrompt.id.desc()).first()

    @staticmethod
    def create_prompt(db: Session, admin_id: str, niche: Optional[str], title: Optional[str],
                      prompt_text: Optional[str]) -> ScriptPrompt:
        if not niche or not title or not prompt_text:
            raise BadRequest("niche, title, promptText are required")

        prompt = ScriptPrompt(
            niche=str(niche),
            title=str(title),
            prompt_text=str(prompt_text),
            active=True,
            user_id=admin_id,
        )
        db.add(prompt)
        db.commit()
        db.refresh(prompt)
        logger.info(f"Admin {admin_id} created prompt {prompt.id} in niche {prompt.niche}")
        return prompt

    @staticmethod
    def update_prompt(db: Session, prompt_id: Optional[int], title: Optional[str] = None,
                      prompt_text: Optional[str] = None, active: Optional[bool] = None) -> ScriptPrompt:
        """Apply a partial update; fields left as None keep their value."""
        if not prompt_id:
            raise BadRequest("id is required")

        prompt = db.query(ScriptPrompt).filter(ScriptPrompt.id == prompt_id).first()
        if not prompt:
            raise NotFound("Prompt not found")

        if title is not None:
            prompt.title = title
        if prompt_text is not None:
            prompt.prompt_text = prompt_text
        if active is not None:
            prompt.active = active
        prompt.updated_at = utcnow()

        db.commit()
        db.refresh(prompt)
        return prompt
