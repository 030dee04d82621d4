from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional, Union
from core.config import settings
from core.exceptions import BadRequest, Conflict, NotFound
from models.payment import CreditPackage, CreditTopup, TopupStatus
from models.wallet import UserWallet
from utils.dates import utcnow
import logging

logger = logging.getLogger(__name__)

DECISION_ACTIONS = ("approve", "reject")

class TopupService:
    """Manual top-up claims: pending -> approved | rejected, decided once by an admin."""

    @staticmethod
    def submit_topup(
        db: Session,
        user_id: str,
        package_id: Optional[int],
        wallet_network: Optional[str],
        tx_hash: Optional[str],
        from_address: Optional[str] = None,
        amount: Optional[Union[str, float]] = None,
        min_tx_hash_length: int = settings.MIN_TX_HASH_LENGTH,
    ) -> CreditTopup:
        """
        Create a pending top-up claim.

        No on-chain verification happens here; the claim is reviewed by an admin.

        Raises:
            BadRequest: Missing fields, implausible tx hash, or unknown/inactive package
        """
        if not package_id or not wallet_network or not tx_hash:
            raise BadRequest("packageId, walletNetwork, txHash are required")

        clean_tx = str(tx_hash).strip()
        if len(clean_tx) < min_tx_hash_length:
            raise BadRequest("Invalid txHash")

        network = str(wallet_network).strip()
        if not network:
            raise BadRequest("packageId, walletNetwork, txHash are required")

        package = db.query(CreditPackage).filter(
            CreditPackage.id == package_id,
            CreditPackage.active.is_(True),
        ).first()
        if not package:
            raise BadRequest("Unknown or inactive package")

        topup = CreditTopup(
            user_id=user_id,
            package_id=package.id,
            wallet_network=network,
            tx_hash=clean_tx,
            from_address=str(from_address).strip() if from_address else None,
            amount=str(amount).strip() if amount not in (None, "") else None,
            status=TopupStatus.PENDING,
        )
        db.add(topup)
        db.commit()
        db.refresh(topup)
        logger.info(f"User {user_id} submitted topup {topup.id} for package {package.code}")
        return topup

    @staticmethod
    def list_user_topups(db: Session, user_id: str, limit: int = 20) -> List[CreditTopup]:
        return db.query(CreditTopup).filter(
            CreditTopup.user_id == user_id
        ).order_by(CreditTopup.created_at.desc(), CreditTopup.id.desc()).limit(limit).all()

    @staticmethod
    def wallet_balance(db: Session, user_id: str) -> float:
        """Spendable balance; legacy negative rows read as 0."""
        balance = db.query(UserWallet.balance).filter(UserWallet.user_id == user_id).scalar()
        return max(float(balance or 0), 0.0)

    @staticmethod
    def list_topups(db: Session, status: str = TopupStatus.PENDING.value, limit: int = 50) -> List[CreditTopup]:
        try:
            wanted = TopupStatus(status)
        except ValueError:
            raise BadRequest("Invalid status")
        return db.query(CreditTopup).filter(
            CreditTopup.status == wanted
        ).order_by(CreditTopup.created_at.desc(), CreditTopup.id.desc()).limit(limit).all()

    @staticmethod
    def _ensure_wallet(db: Session, user_id: str):
        if db.query(UserWallet.id).filter(UserWallet.user_id == user_id).first() is not None:
            return
        db.add(UserWallet(user_id=user_id, balance=0.0))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()

    @staticmethod
    def _close(db: Session, topup_id: int, new_status: TopupStatus, admin_id: str, note: Optional[str]) -> bool:
        # Only a pending row may move; a concurrent decision makes this match nothing
        result = db.execute(
            update(CreditTopup)
            .where(CreditTopup.id == topup_id, CreditTopup.status == TopupStatus.PENDING)
            .values(status=new_status, admin_note=note, approved_by=admin_id, approved_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def decide_topup(
        db: Session,
        admin_id: str,
        topup_id: Optional[int],
        action: Optional[str],
        note: Optional[str] = None,
    ) -> Optional[float]:
        """
        Approve or reject a pending top-up.

        Approval credits the package's credits to the user's wallet in the same
        transaction that closes the claim.

        Returns:
            The wallet balance after approval, or None for a rejection

        Raises:
            BadRequest: Missing id/action or unknown action
            NotFound: Top-up (or its package) does not exist
            Conflict: Top-up is no longer pending
        """
        if not topup_id or not action:
            raise BadRequest("id and action are required")
        if action not in DECISION_ACTIONS:
            raise BadRequest("Invalid action")

        topup = db.query(CreditTopup).filter(CreditTopup.id == topup_id).first()
        if not topup:
            raise NotFound("Topup not found")
        if topup.status != TopupStatus.PENDING:
            raise Conflict("Topup is not pending")

        if action == "reject":
            if not TopupService._close(db, topup_id, TopupStatus.REJECTED, admin_id, note):
                db.rollback()
                raise Conflict("Topup is not pending")
            db.commit()
            logger.info(f"Admin {admin_id} rejected topup {topup_id}")
            return None

        package = db.query(CreditPackage).filter(CreditPackage.id == topup.package_id).first()
        if not package:
            raise NotFound("Package not found")

        user_id = topup.user_id
        credits = package.credits
        TopupService._ensure_wallet(db, user_id)

        if not TopupService._close(db, topup_id, TopupStatus.APPROVED, admin_id, note):
            db.rollback()
            raise Conflict("Topup is not pending")

        db.execute(
            update(UserWallet)
            .where(UserWallet.user_id == user_id)
            .values(balance=case((UserWallet.balance > 0, UserWallet.balance), else_=0) + credits)
            .execution_options(synchronize_session=False)
        )
        new_balance = db.query(UserWallet.balance).filter(UserWallet.user_id == user_id).scalar()
        db.commit()

        logger.info(f"Admin {admin_id} approved topup {topup_id}: +{credits} credits for user {user_id}")
        return float(new_balance or 0)
