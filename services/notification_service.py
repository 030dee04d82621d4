from sqlalchemy import func, update
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from clients.supabase_auth import SupabaseAuthClient
from core.exceptions import BadRequest, NotFound
from models.notification import AdminNotification, UserNotification
from utils.dates import utcnow
import logging

logger = logging.getLogger(__name__)

FANOUT_PAGE_SIZE = 200
BROADCAST_STATUSES = ("sent", "archived")

class NotificationService:
    @staticmethod
    def list_broadcasts(db: Session, limit: int = 30) -> List[AdminNotification]:
        return db.query(AdminNotification).order_by(
            AdminNotification.created_at.desc(), AdminNotification.id.desc()
        ).limit(limit).all()

    @staticmethod
    async def broadcast(
        db: Session,
        auth_client: SupabaseAuthClient,
        admin_id: str,
        title: Optional[str],
        body: Optional[str],
        page_size: int = FANOUT_PAGE_SIZE,
    ) -> Tuple[AdminNotification, int]:
        """
        Log a broadcast and copy it into every user's inbox.

        Users are read from the auth directory one page at a time; each page is
        inserted and committed before the next one is fetched.

        Returns:
            The broadcast log row and the number of inbox rows created
        """
        title = (title or "").strip()
        body = (body or "").strip()
        if not title or not body:
            raise BadRequest("title and body are required")

        log_row = AdminNotification(
            created_by=admin_id,
            title=title,
            body=body,
            audience="all",
            status="sent",
            sent_at=utcnow(),
        )
        db.add(log_row)
        db.commit()
        db.refresh(log_row)

        inserted = 0
        page = 1
        while True:
            users = await auth_client.list_users(page=page, per_page=page_size)
            if not users:
                break
            db.add_all([UserNotification(user_id=u.id, title=title, body=body) for u in users])
            db.commit()
            inserted += len(users)
            if len(users) < page_size:
                break
            page += 1

        logger.info(f"Admin {admin_id} broadcast notification {log_row.id} to {inserted} users")
        return log_row, inserted

    @staticmethod
    def update_broadcast(
        db: Session,
        notification_id: Optional[int],
        title: Optional[str] = None,
        body: Optional[str] = None,
        status: Optional[str] = None,
    ) -> AdminNotification:
        """Edit a broadcast log entry. Inbox copies already delivered are not touched."""
        if not notification_id:
            raise BadRequest("id is required")

        row = db.query(AdminNotification).filter(AdminNotification.id == notification_id).first()
        if not row:
            raise NotFound("Notification not found")

        if status is not None and status not in BROADCAST_STATUSES:
            raise BadRequest("Invalid status")
        if isinstance(title, str) and title.strip():
            row.title = title.strip()
        if isinstance(body, str) and body.strip():
            row.body = body.strip()
        if status is not None:
            row.status = status

        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def inbox(db: Session, user_id: str, limit: int = 50) -> Tuple[List[UserNotification], int]:
        notifications = db.query(UserNotification).filter(
            UserNotification.user_id == user_id
        ).order_by(UserNotification.created_at.desc(), UserNotification.id.desc()).limit(limit).all()

        unread = db.query(func.count(UserNotification.id)).filter(
            UserNotification.user_id == user_id,
            UserNotification.read_at.is_(None),
        ).scalar()
        return notifications, int(unread or 0)

    @staticmethod
    def mark_read(db: Session, user_id: str, notification_id: Optional[int] = None,
                  mark_all: bool = False) -> int:
        now = utcnow()
        if mark_all:
            stmt = update(UserNotification).where(
                UserNotification.user_id == user_id,
                UserNotification.read_at.is_(None),
            )
        else:
            if not notification_id:
                raise BadRequest("id is required")
            # Scoped to the caller so nobody can mark someone else's inbox
            stmt = update(UserNotification).where(
                UserNotification.id == notification_id,
                UserNotification.user_id == user_id,
            )

        result = db.execute(stmt.values(read_at=now).execution_options(synchronize_session=False))
        db.commit()
        return result.rowcount
