from pydantic import BaseModel, Field
from typing import Optional, List
from schemas.credit import WalletRead, MonthCreditsRead, UsageEventRead
from schemas.topup import AdminTopupRead

class AdminMe(BaseModel):
    is_admin: bool = Field(alias="isAdmin")
    email: Optional[str] = None

    class Config:
        populate_by_name = True

class DirectoryUser(BaseModel):
    id: str
    email: Optional[str] = None
    created_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None

    class Config:
        from_attributes = True

class DirectoryPage(BaseModel):
    users: List[DirectoryUser]
    page: int
    per_page: int = Field(alias="perPage")

    class Config:
        populate_by_name = True

class UserDetail(BaseModel):
    user: DirectoryUser
    wallet: WalletRead
    credits: MonthCreditsRead
    topups: List[AdminTopupRead]
    events: List[UsageEventRead]
