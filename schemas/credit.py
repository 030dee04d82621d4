from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime
from models.usage import UsageStatus

class CreditSummary(BaseModel):
    month_start: date
    monthly_quota: int
    free_used: int
    free_remaining: int
    wallet_balance: float
    paid_used_month: float
    total_used_month: float
    total_used_lifetime: int
    total_available_now: float
    plan: str
    purchased_credits_total: float
    purchased_usd_total: float

class WalletRead(BaseModel):
    balance: float = 0

class MonthCreditsRead(BaseModel):
    month_start: date
    monthly_quota: int
    used: int

class CreditPackageRead(BaseModel):
    id: int
    code: str
    name: str
    usd_price: float
    credits: int
    active: bool

    class Config:
        from_attributes = True

class CreditPackageList(BaseModel):
    packages: List[CreditPackageRead]

class UsageEventRead(BaseModel):
    id: int
    tool: str
    action: str
    status: UsageStatus
    credits: int
    meta: Optional[dict] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
