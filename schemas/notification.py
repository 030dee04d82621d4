from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

class BroadcastCreate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None

class BroadcastUpdate(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = None
    body: Optional[str] = None
    status: Optional[str] = None

class AdminNotificationRead(BaseModel):
    id: int
    title: str
    body: str
    audience: str
    status: str
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AdminNotificationList(BaseModel):
    notifications: List[AdminNotificationRead]

class BroadcastResult(BaseModel):
    success: bool = True
    admin_notification_id: int = Field(alias="adminNotificationId")
    inserted: int

    class Config:
        populate_by_name = True

class UserNotificationRead(BaseModel):
    id: int
    title: str
    body: str
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class Inbox(BaseModel):
    notifications: List[UserNotificationRead]
    unread: int

class MarkRead(BaseModel):
    id: Optional[int] = None
    mark_all_read: bool = Field(False, alias="markAllRead")

    class Config:
        populate_by_name = True

class SuccessResponse(BaseModel):
    success: bool = True
