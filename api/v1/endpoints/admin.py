from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from clients.supabase_auth import AuthUser, SupabaseAuthClient
from core.dependencies import (
    get_db,
    get_auth_client,
    get_admin_policy,
    get_ledger,
    get_optional_user,
    get_current_admin_user,
)
from core.security import AdminPolicy
from schemas.admin import AdminMe, DirectoryUser, DirectoryPage, UserDetail
from schemas.credit import UsageEventRead
from schemas.notification import (
    AdminNotificationList,
    AdminNotificationRead,
    BroadcastCreate,
    BroadcastResult,
    BroadcastUpdate,
    SuccessResponse,
)
from schemas.prompt import PromptCreate, PromptCreated, PromptList, PromptUpdate
from schemas.topup import AdminTopupList, AdminTopupRead, TopupDecision, TopupDecisionResponse
from services.credit_ledger import CreditLedger
from services.notification_service import NotificationService
from services.prompt_service import PromptService
from services.topup_service import TopupService
from services.user_directory_service import UserDirectoryService
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"description": "Unauthorized - Missing or invalid token"},
        403: {"description": "Forbidden - Admin access required"},
    }
)

@router.get("/me", response_model=AdminMe, summary="Check whether the caller is an admin")
async def admin_me(
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    policy: AdminPolicy = Depends(get_admin_policy),
):
    """Never fails: anonymous or unknown callers simply get isAdmin=false."""
    return AdminMe(
        is_admin=policy.is_admin(current_user),
        email=current_user.email if current_user else None,
    )

# Notifications

@router.get("/notifications", response_model=AdminNotificationList, summary="List recent broadcasts")
def list_broadcasts(
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
):
    return AdminNotificationList(
        notifications=[AdminNotificationRead.model_validate(n) for n in NotificationService.list_broadcasts(db)]
    )

@router.post(
    "/notifications",
    response_model=BroadcastResult,
    status_code=status.HTTP_200_OK,
    summary="Broadcast a notification to every user",
)
async def send_broadcast(
    req: BroadcastCreate,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    """
    Log a broadcast and deliver it to every user's inbox.

    Args:
        req: Title and body of the notification
        db: Database session
        admin: Current admin user
        auth_client: Source of the user directory

    Returns:
        BroadcastResult: Id of the broadcast log row and number of inbox rows created
    """
    log_row, inserted = await NotificationService.broadcast(db, auth_client, admin.id, req.title, req.body)
    return BroadcastResult(admin_notification_id=log_row.id, inserted=inserted)

@router.patch("/notifications", response_model=AdminNotificationRead, summary="Edit a broadcast log entry")
def update_broadcast(
    req: BroadcastUpdate,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
):
    return NotificationService.update_broadcast(db, req.id, title=req.title, body=req.body, status=req.status)

# Prompts

@router.get("/prompts", response_model=PromptList, summary="List script prompt templates")
def list_prompts(
    niche: Optional[str] = Query(None, description="Only prompts for this niche"),
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
):
    return {"prompts": PromptService.list_prompts(db, niche=niche)}

@router.post("/prompts", response_model=PromptCreated, summary="Create a script prompt template")
def create_prompt(
    req: PromptCreate,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
):
    prompt = PromptService.create_prompt(db, admin.id, req.niche, req.title, req.prompt_text)
    return PromptCreated(id=prompt.id)

@router.patch("/prompts", response_model=SuccessResponse, summary="Update a script prompt template")
def update_prompt(
    req: PromptUpdate,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
):
    PromptService.update_prompt(db, req.id, title=req.title, prompt_text=req.prompt_text, active=req.active)
    return SuccessResponse()

# Top-ups

@router.get("/topups", response_model=AdminTopupList, summary="List top-up requests by status")
def list_topups(
    topup_status: str = Query("pending", alias="status", description="pending, approved or rejected"),
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
):
    topups = TopupService.list_topups(db, status=topup_status)
    return AdminTopupList(topups=[AdminTopupRead.model_validate(t) for t in topups])

@router.patch(
    "/topups",
    response_model=TopupDecisionResponse,
    response_model_exclude_none=True,
    summary="Approve or reject a top-up request",
)
def decide_topup(
    req: TopupDecision,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
):
    """
    Approve or reject a pending top-up.

    Approval adds the package's credits to the user's wallet and returns the
    new balance. Deciding a top-up that is no longer pending fails with 409.
    """
    new_balance = TopupService.decide_topup(db, admin.id, req.id, req.action, req.admin_note)
    return TopupDecisionResponse(new_balance=new_balance)

# Users

@router.get("/users", response_model=DirectoryPage, summary="List users")
async def list_users(
    page: int = Query(1, description="Page number, starting at 1"),
    per_page: int = Query(20, alias="perPage", description="Page size, clamped to 1..100"),
    admin: AuthUser = Depends(get_current_admin_user),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    users, page, per_page = await UserDirectoryService.list_users(auth_client, page=page, per_page=per_page)
    return DirectoryPage(
        users=[DirectoryUser.model_validate(u, from_attributes=True) for u in users],
        page=page,
        per_page=per_page,
    )

@router.get("/users/{user_id}", response_model=UserDetail, summary="Get a user's wallet, credits and activity")
async def get_user_detail(
    user_id: str,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(get_current_admin_user),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
    ledger: CreditLedger = Depends(get_ledger),
):
    detail = await UserDirectoryService.get_user_detail(db, auth_client, ledger, user_id)
    return UserDetail(
        user=DirectoryUser.model_validate(detail["user"], from_attributes=True),
        wallet=detail["wallet"],
        credits=detail["credits"],
        topups=[AdminTopupRead.model_validate(t) for t in detail["topups"]],
        events=[UsageEventRead.model_validate(e) for e in detail["events"]],
    )
