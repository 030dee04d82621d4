from dataclasses import dataclass
from typing import Iterable, Optional
from clients.supabase_auth import AuthUser
from core.exceptions import Forbidden
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminPolicy:
    """Static email allow-list deciding who may use the back-office."""

    emails: frozenset

    @classmethod
    def from_emails(cls, emails: Iterable[str]) -> "AdminPolicy":
        return cls(frozenset(e.strip().lower() for e in emails if e and e.strip()))

    def is_admin_email(self, email: Optional[str]) -> bool:
        if not email:
            return False
        return email.strip().lower() in self.emails

    def is_admin(self, user: Optional[AuthUser]) -> bool:
        if user is None or not user.email_verified:
            return False
        return self.is_admin_email(user.email)

    def require_admin(self, user: AuthUser) -> AuthUser:
        if not self.is_admin(user):
            logger.warning(f"Admin access denied for user {user.id}")
            raise Forbidden()
        return user
