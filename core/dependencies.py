from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from functools import lru_cache
from clients.deapi import DeapiClient, build_deapi_client
from clients.supabase_auth import AuthUser, SupabaseAuthClient, build_auth_client
from clients.text_generation import TextGenerationClient, build_text_client
from core.config import settings
from core.exceptions import AppError, Unauthenticated
from core.security import AdminPolicy
from db.session import get_db
from services.credit_ledger import CreditLedger, LedgerConfig
from typing import Optional
import time
import logging

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is rendered by our own 401 handler
security = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_auth_client",
    "get_admin_policy",
    "get_ledger",
    "get_text_client",
    "get_deapi_client",
    "get_current_user",
    "get_optional_user",
    "get_current_admin_user",
]

@lru_cache()
def get_auth_client() -> SupabaseAuthClient:
    return build_auth_client()

@lru_cache()
def get_text_client() -> TextGenerationClient:
    return build_text_client()

@lru_cache()
def get_deapi_client() -> DeapiClient:
    return build_deapi_client()

def get_admin_policy() -> AdminPolicy:
    return AdminPolicy.from_emails(settings.admin_emails)

def get_ledger() -> CreditLedger:
    return CreditLedger(LedgerConfig.from_settings(settings))

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> AuthUser:
    """
    Dependency for getting the current authenticated user.
    Raises 401 if the bearer token is missing or the auth service does not know it.
    """
    start_time = time.time()
    if not credentials or not credentials.credentials:
        raise Unauthenticated("Missing Authorization header")

    user = await auth_client.get_user(credentials.credentials)
    if not user:
        logger.info("Bearer token rejected by auth service")
        raise Unauthenticated("Unauthorized")

    request.state.user = user
    logger.info(f"Authenticated user {user.id} in {time.time() - start_time:.3f}s")
    return user

async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> Optional[AuthUser]:
    """Like get_current_user, but returns None instead of failing."""
    if not credentials or not credentials.credentials:
        return None
    try:
        user = await auth_client.get_user(credentials.credentials)
    except AppError as e:
        logger.warning(f"Optional authentication failed: {e.message}")
        return None

    if user:
        request.state.user = user
    return user

async def get_current_admin_user(
    current_user: AuthUser = Depends(get_current_user),
    policy: AdminPolicy = Depends(get_admin_policy),
) -> AuthUser:
    """Raises 403 unless the user's verified email is on the admin allow-list."""
    return policy.require_admin(current_user)
