from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Awaitable, Callable, Dict, Optional
from clients.deapi import DeapiClient, VideoOptions
from clients.supabase_auth import AuthUser
from clients.text_generation import TextGenerationClient
from core.dependencies import get_db, get_current_user, get_ledger, get_text_client, get_deapi_client
from core.exceptions import BadRequest, UpstreamProviderError
from schemas.tool import (
    SummarizeRequest,
    SummarizeResponse,
    RedesignPromptRequest,
    RedesignPromptResponse,
    TranscribeRequest,
    TranscribeResponse,
    VideoJobStatus,
    GenerateImageRequest,
    GenerateImageResponse,
    ImageToVideoRequest,
    ImageToVideoResponse,
    FacelessScriptRequest,
    FacelessScriptResponse,
)
from services.credit_ledger import CreditLedger
from services.prompt_service import PromptService
from utils.images import decode_image_payload
from utils.script_json import parse_model_json
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Tools"],
    responses={
        401: {"description": "Unauthorized - Missing or invalid token"},
        402: {"description": "Credit limit reached"},
        500: {"description": "AI provider failure"},
    }
)

SUMMARIZE_PROMPT = """You are a professional text summarizer. Summarize the following text into a {length} length summary.
Guidelines:
- Capture the key points and essential information.
- Maintain a clear and concise tone.
- Return ONLY the summary text."""

REDESIGN_PROMPT = """You are a professional prompt engineer. Your goal is to redesign the user's prompt to be more {tone}, detailed, and effective for AI models.
Guidelines:
- Add specific details, context, and constraints.
- Improve the structure and clarity.
- Ensure it follows best practices for prompting.
- Return ONLY the enhanced prompt text."""

IMAGE_STYLE_MODIFIERS = {
    "Realistic": "natural photography, authentic, real life, genuine, unfiltered",
    "Anime": "anime style, vibrant colors, detailed anime art",
    "Digital Art": "digital art, vibrant, detailed illustration",
    "Oil Painting": "oil painting style, classical art, rich textures",
    "Watercolor": "watercolor painting, soft colors, artistic",
    "Sketch": "pencil sketch, detailed drawing, black and white",
    "3D Render": "3D render, high quality, realistic lighting",
    "Pixel Art": "pixel art style, 16-bit, retro game art",
}

DEFAULT_VIDEO_PROMPT = "Animate this image with smooth natural movement"

SCRIPT_LANGUAGES = {
    "en": "English", "hi": "Hindi", "es": "Spanish", "fr": "French",
    "de": "German", "ar": "Arabic", "zh": "Chinese", "ja": "Japanese", "ko": "Korean",
}

DEFAULT_SCRIPT_PROMPT = """You are a scriptwriter for faceless YouTube videos in the {niche} niche.
Write vivid, factual, engaging scenes in a {style} visual style."""

SCRIPT_FORMAT_PROMPT = """The full video has {total} scenes. Write the narration in {language}.
Return ONLY one valid JSON object, no markdown and no text around it:
{{"title": "...", "synopsis": "...", "scenes": [{{"scene": 1, "description": "...", "camera": "...", "narration": "..."}}]}}
- Keep each description to 1-2 sentences, camera notes under 20 words and narration under 30 words.
- Use plain text only and escape quotes properly."""

def clamp(value: Optional[int], default: int, low: int, high: int) -> int:
    return min(max(value or default, low), high)

async def run_gated(
    db: Session,
    ledger: CreditLedger,
    user: AuthUser,
    tool: str,
    invoke: Callable[[], Awaitable[Any]],
    meta: Optional[Dict[str, Any]] = None,
    charge: bool = True,
    generation_id: Optional[str] = None,
) -> Any:
    """
    Run a provider call behind the credit gate.

    Credits are reserved before `invoke` runs; a failed call gives them back
    and is logged as an error event, a successful one is committed.
    With `charge=False` the call is only logged.
    """
    reservation = ledger.reserve(db, user.id, tool, charge=charge, generation_id=generation_id)
    try:
        result = await invoke()
    except Exception as e:
        logger.error(f"Tool {tool} failed for user {user.id}: {str(e)}")
        failure_meta = dict(meta or {})
        failure_meta["message"] = getattr(e, "message", str(e))
        ledger.release(db, reservation, meta=failure_meta)
        raise

    ledger.commit(db, reservation, meta=meta)
    return result

@router.post("/summarize", response_model=SummarizeResponse, summary="Summarize a block of text")
async def summarize(
    req: SummarizeRequest,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
    text_client: TextGenerationClient = Depends(get_text_client),
):
    if not req.text:
        raise BadRequest("Text is required")
    length = req.length or "medium"

    messages = [
        {"role": "system", "content": SUMMARIZE_PROMPT.format(length=length)},
        {"role": "user", "content": req.text},
    ]
    result = await run_gated(
        db, ledger, current_user, "summarize",
        lambda: text_client.generate(messages, max_tokens=1000, temperature=0.7),
        meta={"length": length},
    )
    return SummarizeResponse(summary=result.text)

@router.post("/redesign-prompt", response_model=RedesignPromptResponse, summary="Rewrite a prompt for AI models")
async def redesign_prompt(
    req: RedesignPromptRequest,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
    text_client: TextGenerationClient = Depends(get_text_client),
):
    if not req.prompt:
        raise BadRequest("Prompt is required")
    tone = req.tone or "professional"

    messages = [
        {"role": "system", "content": REDESIGN_PROMPT.format(tone=tone)},
        {"role": "user", "content": req.prompt},
    ]
    result = await run_gated(
        db, ledger, current_user, "redesign-prompt",
        lambda: text_client.generate(messages, max_tokens=1500, temperature=0.8),
        meta={"tone": tone},
    )
    return RedesignPromptResponse(enhanced=result.text)

@router.post("/transcribe/youtube", response_model=TranscribeResponse, summary="Transcribe a video by URL")
async def transcribe_youtube(
    req: TranscribeRequest,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
    deapi: DeapiClient = Depends(get_deapi_client),
):
    """
    Transcribe a YouTube (or any public) video.

    The provider may answer immediately or hand back a request id, in which
    case the job is polled until it completes, fails or times out.
    """
    if not req.url:
        raise BadRequest("YouTube URL is required")

    result = await run_gated(
        db, ledger, current_user, "video-to-text",
        lambda: deapi.transcribe_video(req.url),
        meta={"url": req.url},
    )
    return TranscribeResponse(
        text=result.text,
        request_id=result.request_id,
        provider="DEAPI",
        attempts=result.attempts,
    )

@router.get("/image-to-video/status", response_model=VideoJobStatus, summary="Poll an image-to-video job")
async def image_to_video_status(
    request_id: Optional[str] = Query(None, alias="requestId"),
    current_user: AuthUser = Depends(get_current_user),
    deapi: DeapiClient = Depends(get_deapi_client),
):
    if not request_id:
        raise BadRequest("Request ID is required")

    job = await deapi.job_status(request_id)
    return VideoJobStatus(
        status=job.status,
        video_url=job.video_url,
        progress=job.progress,
        error=job.error,
        request_id=job.request_id,
    )

@router.post("/generate-image", response_model=GenerateImageResponse, summary="Generate an image from a prompt")
async def generate_image(
    req: GenerateImageRequest,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
    deapi: DeapiClient = Depends(get_deapi_client),
):
    if not req.prompt:
        raise BadRequest("Prompt is required")
    style = req.style or "Digital Art"
    modifier = IMAGE_STYLE_MODIFIERS.get(style, IMAGE_STYLE_MODIFIERS["Digital Art"])
    prompt = f"{req.prompt}, {modifier}"

    result = await run_gated(
        db, ledger, current_user, "generate-image",
        lambda: deapi.generate_image(prompt),
        meta={"style": style},
    )
    return GenerateImageResponse(
        image_url=result.image_url,
        revised_prompt=prompt,
        metadata={"provider": "deapi", "totalAttempts": result.attempts},
    )

@router.post("/image-to-video", response_model=ImageToVideoResponse, summary="Animate an image into a short video")
async def image_to_video(
    req: ImageToVideoRequest,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
    deapi: DeapiClient = Depends(get_deapi_client),
):
    """
    Submit an image-to-video job and wait for the finished clip.

    Width and height are clamped to 256-1024, frames to 30-240, fps to 15-60
    and steps to 1-10.
    """
    if not req.image:
        raise BadRequest("Image is required")
    try:
        image = decode_image_payload(req.image)
    except ValueError as e:
        raise BadRequest(str(e))

    options = VideoOptions(
        prompt=req.prompt or DEFAULT_VIDEO_PROMPT,
        width=clamp(req.width, 512, 256, 1024),
        height=clamp(req.height, 512, 256, 1024),
        frames=clamp(req.frames, 120, 30, 240),
        fps=clamp(req.fps, 30, 15, 60),
        steps=clamp(req.steps, 1, 1, 10),
    )
    result = await run_gated(
        db, ledger, current_user, "image-to-video",
        lambda: deapi.image_to_video(image.data, image.filename, image.content_type, options),
        meta={"frames": options.frames, "fps": options.fps},
    )
    return ImageToVideoResponse(
        video_url=result.video_url,
        duration=options.frames / options.fps,
        resolution=f"{options.width}x{options.height}",
        fps=options.fps,
    )

@router.post("/faceless-script", response_model=FacelessScriptResponse, summary="Generate a faceless video script")
async def faceless_script(
    req: FacelessScriptRequest,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
    text_client: TextGenerationClient = Depends(get_text_client),
):
    """
    Generate one batch of scenes for a faceless video script.

    The dashboard requests a long script in several batches. A batch is
    charged when it starts the script or carries a `generationId`, and a
    `generationId` is charged at most once.
    """
    tool = "faceless-script"
    if not req.topic:
        raise BadRequest("Topic is required")

    total = clamp(req.total_scenes, 8, 1, 113)
    start = req.start_scene or 1
    if start < 1 or start > total:
        raise BadRequest("startScene is out of range")
    end = min(start + clamp(req.scene_count, 1, 1, 5) - 1, total)

    generation_id = (req.generation_id or "").strip() or None
    already_charged = bool(generation_id) and ledger.has_charged_generation(db, current_user.id, tool, generation_id)
    should_charge = not already_charged and (start <= 1 or generation_id is not None)

    niche = req.niche or "general"
    style = req.style or "cinematic"
    template = PromptService.active_prompt(db, req.niche)
    system_prompt = template.prompt_text if template else DEFAULT_SCRIPT_PROMPT.format(niche=niche, style=style)
    if req.sub_niche:
        system_prompt += f"\nFocus on the sub-niche: {req.sub_niche}."
    system_prompt += "\n\n" + SCRIPT_FORMAT_PROMPT.format(
        total=total, language=SCRIPT_LANGUAGES.get(req.language or "en", "English"),
    )
    messages = [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": f'Generate scenes {start} to {end} (exactly {end - start + 1} scenes) for topic: "{req.topic}".\n'
                       f"Subject: {req.subject_name or 'Main character'}.\n"
                       f"Scene numbering must start at {start} and increment by 1.",
        },
    ]
    meta = {"niche": niche, "subNiche": req.sub_niche, "startScene": start}

    async def write_batch() -> Dict[str, Any]:
        result = await text_client.generate(messages, max_tokens=4000, temperature=0.7)
        try:
            script = parse_model_json(result.text)
        except ValueError as e:
            raise UpstreamProviderError(f"Failed to parse script from AI response: {e}")
        if isinstance(script, list):
            script = {"scenes": script, "title": req.topic, "synopsis": req.topic}
        if not isinstance(script, dict) or not isinstance(script.get("scenes"), list):
            raise UpstreamProviderError("AI response did not contain any scenes")
        meta["scenes"] = len(script["scenes"])
        return script

    script = await run_gated(
        db, ledger, current_user, tool, write_batch,
        meta=meta, charge=should_charge, generation_id=generation_id,
    )
    script["totalScenes"] = total
    script["startScene"] = start
    return FacelessScriptResponse(script=script)
