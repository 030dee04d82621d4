from sqlalchemy.orm import Session
from typing import Any, Dict, List, Tuple
from clients.supabase_auth import AuthUser, SupabaseAuthClient
from core.exceptions import NotFound
from models.credit import UserCredit
from models.payment import CreditTopup
from models.usage import UsageEvent
from services.credit_ledger import CreditLedger
from services.topup_service import TopupService

MAX_PER_PAGE = 100

class UserDirectoryService:
    @staticmethod
    def clamp_per_page(per_page: int) -> int:
        return min(max(per_page, 1), MAX_PER_PAGE)

    @staticmethod
    async def list_users(auth_client: SupabaseAuthClient, page: int = 1,
                         per_page: int = 20) -> Tuple[List[AuthUser], int, int]:
        per_page = UserDirectoryService.clamp_per_page(per_page)
        users = await auth_client.list_users(page=page, per_page=per_page)
        return users, page, per_page

    @staticmethod
    async def get_user_detail(db: Session, auth_client: SupabaseAuthClient, ledger: CreditLedger,
                              user_id: str) -> Dict[str, Any]:
        """Everything the back-office shows for one user: wallet, this month's free credits, recent activity."""
        user = await auth_client.get_user_by_id(user_id)
        if not user:
            raise NotFound("User not found")

        month_start = ledger.current_month()
        month_row = db.query(UserCredit).filter(
            UserCredit.user_id == user_id,
            UserCredit.month_start == month_start,
        ).first()

        topups = db.query(CreditTopup).filter(
            CreditTopup.user_id == user_id
        ).order_by(CreditTopup.created_at.desc(), CreditTopup.id.desc()).limit(20).all()

        events = db.query(UsageEvent).filter(
            UsageEvent.user_id == user_id
        ).order_by(UsageEvent.created_at.desc(), UsageEvent.id.desc()).limit(30).all()

        return {
            "user": user,
            "wallet": {"balance": TopupService.wallet_balance(db, user_id)},
            "credits": {
                "month_start": month_start,
                "monthly_quota": month_row.monthly_quota if month_row else ledger.config.monthly_quota,
                "used": month_row.used if month_row else 0,
            },
            "topups": topups,
            "events": events,
        }
