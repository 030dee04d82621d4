from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Union
from models.payment import TopupStatus
from schemas.credit import WalletRead

# Request bodies use the dashboard's camelCase keys

class TopupCreate(BaseModel):
    package_id: Optional[int] = Field(None, alias="packageId")
    wallet_network: Optional[str] = Field(None, alias="walletNetwork")
    tx_hash: Optional[str] = Field(None, alias="txHash")
    from_address: Optional[str] = Field(None, alias="fromAddress")
    amount: Optional[Union[str, float]] = None

    class Config:
        populate_by_name = True

class TopupDecision(BaseModel):
    id: Optional[int] = None
    action: Optional[str] = None
    admin_note: Optional[str] = Field(None, alias="adminNote")

    class Config:
        populate_by_name = True

# Responses

class TopupCreated(BaseModel):
    id: int
    status: TopupStatus
    created_at: datetime

    class Config:
        from_attributes = True

class TopupSubmitResponse(BaseModel):
    success: bool = True
    request: TopupCreated

class TopupRead(BaseModel):
    id: int
    status: TopupStatus
    wallet_network: str
    tx_hash: str
    amount: Optional[str] = None
    created_at: datetime
    package_id: int

    class Config:
        from_attributes = True

class UserTopupList(BaseModel):
    requests: List[TopupRead]
    wallet: WalletRead

class AdminTopupRead(TopupRead):
    user_id: str
    from_address: Optional[str] = None
    admin_note: Optional[str] = None
    approved_at: Optional[datetime] = None

class AdminTopupList(BaseModel):
    topups: List[AdminTopupRead]

class TopupDecisionResponse(BaseModel):
    success: bool = True
    new_balance: Optional[float] = Field(None, alias="newBalance")

    class Config:
        populate_by_name = True
