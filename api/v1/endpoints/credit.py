from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from clients.supabase_auth import AuthUser
from core.dependencies import get_db, get_current_user, get_ledger
from models.payment import CreditPackage
from schemas.credit import CreditSummary, CreditPackageList, WalletRead
from schemas.topup import TopupCreate, TopupSubmitResponse, TopupCreated, UserTopupList, TopupRead
from services.credit_ledger import CreditLedger
from services.topup_service import TopupService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/credits",
    tags=["Credits"],
    responses={
        401: {"description": "Unauthorized - Missing or invalid token"},
    }
)

@router.get("/summary", response_model=CreditSummary, summary="Get your credit summary for this month")
def get_credit_summary(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
):
    """
    Free quota, wallet balance and usage for the current UTC month, plus the
    derived plan (free, standard or pro).
    """
    return ledger.get_summary(db, current_user.id)

@router.post(
    "/topup",
    response_model=TopupSubmitResponse,
    status_code=status.HTTP_200_OK,
    summary="Submit a crypto top-up request",
)
def submit_topup(
    req: TopupCreate,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    """
    Record a manual payment claim for a credit package.

    The claim stays pending until an admin approves or rejects it.
    """
    topup = TopupService.submit_topup(
        db,
        user_id=current_user.id,
        package_id=req.package_id,
        wallet_network=req.wallet_network,
        tx_hash=req.tx_hash,
        from_address=req.from_address,
        amount=req.amount,
    )
    return TopupSubmitResponse(request=TopupCreated.model_validate(topup))

@router.get("/topup", response_model=UserTopupList, summary="List your top-up requests")
def list_topups(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
):
    topups = TopupService.list_user_topups(db, current_user.id)
    return UserTopupList(
        requests=[TopupRead.model_validate(t) for t in topups],
        wallet=WalletRead(balance=TopupService.wallet_balance(db, current_user.id)),
    )

@router.get("/packages", response_model=CreditPackageList, summary="List purchasable credit packages")
def list_packages(db: Session = Depends(get_db)):
    packages = db.query(CreditPackage).filter(
        CreditPackage.active.is_(True)
    ).order_by(CreditPackage.usd_price.asc()).all()
    return {"packages": packages}
