from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from clients.supabase_auth import AuthUser
from core.dependencies import get_db, get_current_user
from schemas.notification import Inbox, MarkRead, SuccessResponse, UserNotificationRead
from services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.get("", response_model=Inbox, summary="List your notifications")
def get_inbox(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    notifications, unread = NotificationService.inbox(db, current_user.id)
    return Inbox(
        notifications=[UserNotificationRead.model_validate(n) for n in notifications],
        unread=unread,
    )

@router.patch("", response_model=SuccessResponse, summary="Mark notifications as read")
def mark_read(
    req: MarkRead,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    """Mark one notification (`id`) or all unread ones (`markAllRead`) as read."""
    NotificationService.mark_read(db, current_user.id, notification_id=req.id, mark_all=req.mark_all_read)
    return SuccessResponse()
