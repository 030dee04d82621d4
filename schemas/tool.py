from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

class SummarizeRequest(BaseModel):
    text: Optional[str] = None
    length: Optional[str] = None

class SummarizeResponse(BaseModel):
    summary: str

class RedesignPromptRequest(BaseModel):
    prompt: Optional[str] = None
    tone: Optional[str] = None

class RedesignPromptResponse(BaseModel):
    enhanced: str

class TranscribeRequest(BaseModel):
    url: Optional[str] = None

class TranscribeResponse(BaseModel):
    success: bool = True
    text: str
    request_id: str = Field(alias="requestId")
    provider: str = "DEAPI"
    attempts: int

    class Config:
        populate_by_name = True

class VideoJobStatus(BaseModel):
    success: bool = True
    status: Optional[str] = None
    video_url: Optional[str] = Field(None, alias="videoUrl")
    progress: Optional[Any] = None
    error: Optional[Any] = None
    request_id: str = Field(alias="requestId")

    class Config:
        populate_by_name = True

class GenerateImageRequest(BaseModel):
    prompt: Optional[str] = None
    style: Optional[str] = None

class GenerateImageResponse(BaseModel):
    success: bool = True
    image_url: str = Field(alias="imageUrl")
    revised_prompt: str = Field(alias="revisedPrompt")
    metadata: Dict[str, Any] = {}

    class Config:
        populate_by_name = True

class ImageToVideoRequest(BaseModel):
    image: Optional[str] = None
    prompt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    frames: Optional[int] = None
    fps: Optional[int] = None
    steps: Optional[int] = None

class ImageToVideoResponse(BaseModel):
    success: bool = True
    video_url: str = Field(alias="videoUrl")
    duration: float
    resolution: str
    fps: int

    class Config:
        populate_by_name = True

class FacelessScriptRequest(BaseModel):
    topic: Optional[str] = None
    niche: Optional[str] = None
    sub_niche: Optional[str] = Field(None, alias="subNiche")
    language: Optional[str] = None
    style: Optional[str] = None
    subject_name: Optional[str] = Field(None, alias="subjectName")
    total_scenes: Optional[int] = Field(None, alias="totalScenes")
    start_scene: Optional[int] = Field(None, alias="startScene")
    scene_count: Optional[int] = Field(None, alias="sceneCount")
    generation_id: Optional[str] = Field(None, alias="generationId")

    class Config:
        populate_by_name = True

class FacelessScriptResponse(BaseModel):
    script: Dict[str, Any]
