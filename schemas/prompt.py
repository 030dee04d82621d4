from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

class PromptCreate(BaseModel):
    niche: Optional[str] = None
    title: Optional[str] = None
    prompt_text: Optional[str] = Field(None, alias="promptText")

    class Config:
        populate_by_name = True

class PromptUpdate(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = None
    prompt_text: Optional[str] = Field(None, alias="promptText")
    active: Optional[bool] = None

    class Config:
        populate_by_name = True

class PromptRead(BaseModel):
    id: int
    niche: str
    title: str
    prompt_text: str
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PromptList(BaseModel):
    prompts: List[PromptRead]

class PromptCreated(BaseModel):
    success: bool = True
    id: int
