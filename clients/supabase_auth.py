import logging
from typing import Any, Dict, List, Optional
import httpx
from pydantic import BaseModel
from core.config import settings
from core.exceptions import ConfigurationError, UpstreamProviderError

logger = logging.getLogger(__name__)


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None
    email_verified: bool = False
    created_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AuthUser":
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            email_verified=bool(data.get("email_confirmed_at") or data.get("confirmed_at")),
            created_at=data.get("created_at"),
            last_sign_in_at=data.get("last_sign_in_at"),
        )


class SupabaseAuthClient:
    """
    Thin client for the hosted auth service (GoTrue REST API).

    Session issuance lives entirely in the hosted service; this client only
    resolves bearer tokens to users and reads the user directory.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        service_role_key: Optional[str] = None,
        timeout: float = settings.AUTH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=f"{self.base_url}/auth/v1", timeout=self.timeout, transport=self.transport)

    def _user_headers(self, access_token: str) -> Dict[str, str]:
        if not self.base_url or not self.anon_key:
            raise ConfigurationError("Supabase is not configured")
        return {"apikey": self.anon_key, "Authorization": f"Bearer {access_token}"}

    def _service_headers(self) -> Dict[str, str]:
        if not self.base_url or not self.service_role_key:
            raise ConfigurationError("Supabase service role is not configured")
        return {"apikey": self.service_role_key, "Authorization": f"Bearer {self.service_role_key}"}

    async def _get(self, path: str, headers: Dict[str, str], params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.get(path, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Auth service request to {path} failed: {e}")
            raise UpstreamProviderError(f"Auth service unavailable: {e}")

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            raise UpstreamProviderError("Auth service returned an invalid response", status=resp.status_code)

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        """Resolve an access token to its user, or None if the token is not valid."""
        resp = await self._get("/user", self._user_headers(access_token))

        if resp.status_code in (401, 403, 404):
            return None
        if resp.status_code >= 400:
            logger.error(f"Auth service returned {resp.status_code} while resolving user")
            raise UpstreamProviderError(f"Auth service error: {resp.status_code}", status=resp.status_code)
        return AuthUser.from_payload(self._json(resp))

    async def list_users(self, page: int = 1, per_page: int = 50) -> List[AuthUser]:
        resp = await self._get("/admin/users", self._service_headers(), params={"page": page, "per_page": per_page})

        if resp.status_code >= 400:
            raise UpstreamProviderError(f"Failed to list users: {resp.status_code}", status=resp.status_code)
        data = self._json(resp)
        users = data.get("users", []) if isinstance(data, dict) else data
        return [AuthUser.from_payload(u) for u in users]

    async def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        resp = await self._get(f"/admin/users/{user_id}", self._service_headers())

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise UpstreamProviderError(f"Failed to load user: {resp.status_code}", status=resp.status_code)
        return AuthUser.from_payload(self._json(resp))


def build_auth_client() -> SupabaseAuthClient:
    return SupabaseAuthClient(
        base_url=settings.SUPABASE_URL,
        anon_key=settings.SUPABASE_ANON_KEY,
        service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
    )
