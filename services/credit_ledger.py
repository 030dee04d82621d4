from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from sqlalchemy import case, desc, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from core.config import Settings
from core.exceptions import Conflict, InsufficientCredits, InternalError
from models.credit import UserCredit
from models.payment import CreditPackage, CreditTopup, TopupStatus
from models.usage import UsageEvent, UsageStatus, UserUsageTotal
from models.wallet import UserWallet
from schemas.credit import CreditSummary
from utils.dates import month_start_datetime, start_of_month, utcnow
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerConfig:
    monthly_quota: int = 100
    tool_credits: Mapping[str, int] = field(default_factory=dict)
    default_tool_credits: int = 1
    entry_pack_code: str = "pack_10"
    pro_usd_threshold: float = 10.0
    pro_credits_threshold: int = 6000
    usage_scan_limit: int = 5000
    max_charge_attempts: int = 5

    @classmethod
    def from_settings(cls, s: Settings) -> "LedgerConfig":
        return cls(
            monthly_quota=s.CREDIT_LIMIT_MONTHLY,
            tool_credits=dict(s.TOOL_CREDITS),
            default_tool_credits=s.DEFAULT_TOOL_CREDITS,
            entry_pack_code=s.ENTRY_PACK_CODE,
            pro_usd_threshold=s.PRO_USD_THRESHOLD,
            pro_credits_threshold=s.PRO_CREDITS_THRESHOLD,
            usage_scan_limit=s.USAGE_SCAN_LIMIT,
            max_charge_attempts=s.MAX_CHARGE_ATTEMPTS,
        )


@dataclass(frozen=True)
class CreditCheck:
    credits_needed: int
    remaining: float
    month_start: date


@dataclass(frozen=True)
class ChargeSplit:
    free_charge: int
    wallet_charge: float

    def as_meta(self) -> Dict[str, Any]:
        return {"freeCharge": self.free_charge, "walletCharge": self.wallet_charge}


@dataclass
class CreditReservation:
    """Credits taken up-front for a tool call, settled by commit() or release()."""

    user_id: str
    tool: str
    credits: int
    month_start: date
    split: ChargeSplit
    generation_id: Optional[str] = None
    settled: bool = False


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class CreditLedger:
    """
    Free monthly quota + paid wallet accounting.

    Charges always draw on the free quota first and the wallet second. Every
    balance mutation is a single conditional UPDATE evaluated by the database,
    so concurrent charges for one user cannot lose updates; a charge whose
    precondition no longer holds is re-read and retried.
    """

    def __init__(self, config: LedgerConfig, clock: Callable[[], datetime] = utcnow):
        self.config = config
        self.clock = clock

    def cost_for_tool(self, tool: str) -> int:
        return int(self.config.tool_credits.get(tool, self.config.default_tool_credits))

    def current_month(self) -> date:
        return start_of_month(self.clock())

    # Reads

    def _free_state(self, db: Session, user_id: str, month_start: date) -> Tuple[int, int]:
        row = db.execute(
            select(UserCredit.monthly_quota, UserCredit.used).where(
                UserCredit.user_id == user_id,
                UserCredit.month_start == month_start,
            )
        ).first()
        if row is None:
            return self.config.monthly_quota, 0
        return int(row.monthly_quota), int(row.used)

    def wallet_balance(self, db: Session, user_id: str) -> float:
        balance = db.execute(
            select(UserWallet.balance).where(UserWallet.user_id == user_id)
        ).scalar_one_or_none()
        return max(_number(balance), 0.0)

    def _available(self, db: Session, user_id: str, month_start: date) -> Tuple[int, float]:
        quota, used = self._free_state(db, user_id, month_start)
        return max(quota - used, 0), self.wallet_balance(db, user_id)

    def classify_plan(self, approved_topups: int, purchased_usd: float, purchased_credits: float,
                      bought_entry_pack: bool) -> str:
        if approved_topups == 0:
            return "free"
        if (bought_entry_pack
                or purchased_usd >= self.config.pro_usd_threshold
                or purchased_credits >= self.config.pro_credits_threshold):
            return "pro"
        return "standard"

    def get_summary(self, db: Session, user_id: str) -> CreditSummary:
        """
        Summarize a user's standing for the current month.

        Read-only. Store errors propagate to the caller untouched.
        """
        month_start = self.current_month()
        quota, used = self._free_state(db, user_id, month_start)
        free_remaining = max(quota - used, 0)
        wallet = self.wallet_balance(db, user_id)

        events = db.execute(
            select(UsageEvent.credits, UsageEvent.meta)
            .where(
                UsageEvent.user_id == user_id,
                UsageEvent.created_at >= month_start_datetime(month_start),
            )
            .order_by(desc(UsageEvent.created_at))
            .limit(self.config.usage_scan_limit)
        ).all()

        total_used = 0.0
        paid_used = 0.0
        for ev in events:
            credits = _number(ev.credits)
            if credits > 0:
                total_used += credits
            wallet_charge = _number((ev.meta or {}).get("walletCharge"))
            if wallet_charge > 0:
                paid_used += wallet_charge

        purchases = db.execute(
            select(CreditPackage.code, CreditPackage.credits, CreditPackage.usd_price)
            .select_from(CreditTopup)
            .join(CreditPackage, CreditTopup.package_id == CreditPackage.id)
            .where(
                CreditTopup.user_id == user_id,
                CreditTopup.status == TopupStatus.APPROVED,
            )
        ).all()

        purchased_credits = sum(_number(p.credits) for p in purchases)
        purchased_usd = sum(_number(p.usd_price) for p in purchases)
        bought_entry_pack = any(p.code == self.config.entry_pack_code for p in purchases)

        lifetime = db.execute(
            select(UserUsageTotal.credits_used).where(UserUsageTotal.user_id == user_id)
        ).scalar_one_or_none()

        return CreditSummary(
            month_start=month_start,
            monthly_quota=quota,
            free_used=used,
            free_remaining=free_remaining,
            wallet_balance=wallet,
            paid_used_month=paid_used,
            total_used_month=total_used,
            total_used_lifetime=int(lifetime or 0),
            total_available_now=free_remaining + wallet,
            plan=self.classify_plan(len(purchases), purchased_usd, purchased_credits, bought_entry_pack),
            purchased_credits_total=purchased_credits,
            purchased_usd_total=purchased_usd,
        )

    def check_credits(self, db: Session, user_id: str, tool: str) -> CreditCheck:
        credits_needed = self.cost_for_tool(tool)
        month_start = self.current_month()
        free_remaining, wallet = self._available(db, user_id, month_start)
        remaining = free_remaining + wallet
        if remaining < credits_needed:
            logger.info(f"User {user_id} cannot afford {tool}: needs {credits_needed}, has {remaining}")
            raise InsufficientCredits(credits_needed, remaining)
        return CreditCheck(credits_needed=credits_needed, remaining=remaining, month_start=month_start)

    def has_charged_generation(self, db: Session, user_id: str, tool: str, generation_id: str) -> bool:
        """True when a charged, successful event already exists for this generation."""
        return db.execute(
            select(UsageEvent.id).where(
                UsageEvent.user_id == user_id,
                UsageEvent.tool == tool,
                UsageEvent.status == UsageStatus.SUCCESS,
                UsageEvent.credits > 0,
                UsageEvent.generation_id == generation_id,
            ).limit(1)
        ).first() is not None

    # Mutations

    def _insert_if_absent(self, db: Session, model, lookup: Dict[str, Any], **values):
        conditions = [getattr(model, k) == v for k, v in lookup.items()]
        if db.execute(select(model.id).where(*conditions)).first() is not None:
            return
        db.add(model(**lookup, **values))
        try:
            db.commit()
        except IntegrityError:
            # Another request created it first
            db.rollback()

    def _try_debit(self, db: Session, user_id: str, month_start: date, split: ChargeSplit) -> bool:
        if split.free_charge > 0:
            result = db.execute(
                update(UserCredit)
                .where(
                    UserCredit.user_id == user_id,
                    UserCredit.month_start == month_start,
                    UserCredit.used + split.free_charge <= UserCredit.monthly_quota,
                )
                .values(used=UserCredit.used + split.free_charge)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return False

        if split.wallet_charge > 0:
            result = db.execute(
                update(UserWallet)
                .where(UserWallet.user_id == user_id, UserWallet.balance >= split.wallet_charge)
                .values(balance=UserWallet.balance - split.wallet_charge)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return False
        return True

    def _apply_charge(self, db: Session, user_id: str, credits: int, month_start: date) -> ChargeSplit:
        """Debit `credits` (free quota first). Leaves the changes uncommitted."""
        free_remaining, wallet = self._available(db, user_id, month_start)
        if free_remaining + wallet < credits:
            raise InsufficientCredits(credits, free_remaining + wallet)

        self._insert_if_absent(
            db, UserCredit, {"user_id": user_id, "month_start": month_start},
            monthly_quota=self.config.monthly_quota, used=0,
        )
        self._insert_if_absent(db, UserUsageTotal, {"user_id": user_id}, credits_used=0)

        for attempt in range(1, self.config.max_charge_attempts + 1):
            free_remaining, wallet = self._available(db, user_id, month_start)
            if free_remaining + wallet < credits:
                db.rollback()
                raise InsufficientCredits(credits, free_remaining + wallet)

            free_charge = min(free_remaining, credits)
            split = ChargeSplit(free_charge=free_charge, wallet_charge=credits - free_charge)
            if self._try_debit(db, user_id, month_start, split):
                db.execute(
                    update(UserUsageTotal)
                    .where(UserUsageTotal.user_id == user_id)
                    .values(credits_used=UserUsageTotal.credits_used + credits)
                    .execution_options(synchronize_session=False)
                )
                return split

            db.rollback()
            logger.warning(f"Balance for user {user_id} changed during charge, retrying ({attempt})")

        raise Conflict("Balance changed concurrently, please retry")

    def _apply_refund(self, db: Session, reservation: CreditReservation):
        split = reservation.split
        if split.free_charge > 0:
            db.execute(
                update(UserCredit)
                .where(
                    UserCredit.user_id == reservation.user_id,
                    UserCredit.month_start == reservation.month_start,
                )
                .values(used=case(
                    (UserCredit.used >= split.free_charge, UserCredit.used - split.free_charge),
                    else_=0,
                ))
                .execution_options(synchronize_session=False)
            )
        if split.wallet_charge > 0:
            db.execute(
                update(UserWallet)
                .where(UserWallet.user_id == reservation.user_id)
                .values(balance=UserWallet.balance + split.wallet_charge)
                .execution_options(synchronize_session=False)
            )
        db.execute(
            update(UserUsageTotal)
            .where(UserUsageTotal.user_id == reservation.user_id)
            .values(credits_used=case(
                (UserUsageTotal.credits_used >= reservation.credits,
                 UserUsageTotal.credits_used - reservation.credits),
                else_=0,
            ))
            .execution_options(synchronize_session=False)
        )

    def _append_event(self, db: Session, user_id: str, tool: str, status: UsageStatus, credits: int,
                      meta: Dict[str, Any], action: str, generation_id: Optional[str] = None) -> UsageEvent:
        if generation_id:
            meta = dict(meta, generationId=generation_id)
        event = UsageEvent(
            user_id=user_id,
            tool=tool,
            action=action or "run",
            status=status,
            credits=credits,
            meta=meta,
            generation_id=generation_id,
            created_at=self.clock(),
        )
        db.add(event)
        return event

    def log_usage_and_charge(
        self,
        db: Session,
        user_id: str,
        tool: str,
        status: str,
        credits: int,
        meta: Optional[Dict[str, Any]] = None,
        action: str = "run",
        generation_id: Optional[str] = None,
    ) -> UsageEvent:
        """
        Record a tool invocation and charge it when it succeeded.

        Args:
            db: Database session
            user_id: Auth user id
            tool: Tool slug
            status: success, error or pending
            credits: Credits to charge (0 allowed)
            meta: Extra data stored on the event
            action: Sub-action name
            generation_id: Groups several calls that make up one billable generation

        Returns:
            UsageEvent: The appended event

        Raises:
            InsufficientCredits: If the user cannot cover `credits`; nothing is written.
        """
        status = UsageStatus(status)
        meta = dict(meta or {})

        if status == UsageStatus.SUCCESS and credits > 0:
            try:
                split = self._apply_charge(db, user_id, credits, self.current_month())
                meta.update(split.as_meta())
            except (SQLAlchemyError, Conflict) as e:
                # The event is still recorded, uncharged, for later reconciliation
                db.rollback()
                logger.error(f"Failed to charge {credits} credits to user {user_id} for {tool}: {str(e)}")
                meta["chargeError"] = str(e)

        event = self._append_event(db, user_id, tool, status, credits, meta, action, generation_id)
        db.commit()
        db.refresh(event)
        logger.info(f"Logged {status.value} usage of {tool} for user {user_id} ({credits} credits)")
        return event

    def reserve(self, db: Session, user_id: str, tool: str, charge: bool = True,
                generation_id: Optional[str] = None) -> CreditReservation:
        """
        Authorize and charge a tool call before the provider is invoked.

        With `charge=False` nothing is checked or debited; the reservation only
        carries the call through to its usage event.
        """
        if not charge:
            logger.info(f"Free call of {tool} for user {user_id} (generation {generation_id})")
            return CreditReservation(
                user_id=user_id,
                tool=tool,
                credits=0,
                month_start=self.current_month(),
                split=ChargeSplit(free_charge=0, wallet_charge=0),
                generation_id=generation_id,
            )
        check = self.check_credits(db, user_id, tool)
        split = ChargeSplit(free_charge=0, wallet_charge=0)
        if check.credits_needed > 0:
            split = self._apply_charge(db, user_id, check.credits_needed, check.month_start)
            db.commit()
        logger.info(f"Reserved {check.credits_needed} credits for user {user_id} ({tool}): {split.as_meta()}")
        return CreditReservation(
            user_id=user_id,
            tool=tool,
            credits=check.credits_needed,
            month_start=check.month_start,
            split=split,
            generation_id=generation_id,
        )

    def commit(self, db: Session, reservation: CreditReservation, meta: Optional[Dict[str, Any]] = None,
               action: str = "run") -> UsageEvent:
        if reservation.settled:
            raise InternalError("Credit reservation already settled")
        event_meta = dict(meta or {})
        event_meta.update(reservation.split.as_meta())
        event = self._append_event(
            db, reservation.user_id, reservation.tool, UsageStatus.SUCCESS, reservation.credits, event_meta, action,
            reservation.generation_id,
        )
        db.commit()
        db.refresh(event)
        reservation.settled = True
        return event

    def release(self, db: Session, reservation: CreditReservation, meta: Optional[Dict[str, Any]] = None,
                action: str = "run") -> UsageEvent:
        """Refund a reservation after a failed tool call and log the failure."""
        if reservation.settled:
            raise InternalError("Credit reservation already settled")
        event_meta = dict(meta or {})
        try:
            self._apply_refund(db, reservation)
            event_meta["refunded"] = reservation.credits
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to refund reservation for user {reservation.user_id}: {str(e)}")
            event_meta["refundError"] = str(e)

        event = self._append_event(
            db, reservation.user_id, reservation.tool, UsageStatus.ERROR, 0, event_meta, action, reservation.generation_id
        )
        db.commit()
        db.refresh(event)
        reservation.settled = True
        logger.info(f"Released {reservation.credits} credits for user {reservation.user_id} ({reservation.tool})")
        return event
