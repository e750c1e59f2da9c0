"""
Auth Service - Bearer token resolution and account approval checks
"""

from typing import Optional

import httpx
from pydantic import BaseModel
from sqlalchemy.orm import Session

from scenegen.config.settings import settings
from scenegen.models.project import ProfileModel, ProfileStatus
from scenegen.services.errors import AppError, ErrorCode
from scenegen.services.observability import logger
from scenegen.services.storage import ProfileDB


class AuthUser(BaseModel):
    """Authenticated caller"""

    id: str
    email: Optional[str] = None


class AuthClient:
    """
    Resolve access tokens against the Supabase auth API
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.supabase_service_key
        self.client = client or httpx.AsyncClient(timeout=settings.storage_timeout_s)

    async def get_user(self, token: Optional[str]) -> AuthUser:
        """
        Resolve the user behind an access token

        Args:
            token: Bearer token from the Authorization header

        Returns:
            AuthUser

        Raises:
            AppError: AUTH_ERROR if the token is missing or rejected
        """
        if not token:
            raise AppError(ErrorCode.AUTH_ERROR, "Missing authorization token")

        try:
            response = await self.client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.api_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.error("auth_request_failed", error=str(e))
            raise AppError(ErrorCode.UPSTREAM_ERROR, "Authentication service unavailable") from e

        if response.status_code in (401, 403):
            raise AppError(ErrorCode.AUTH_ERROR, "Invalid or expired token")
        if not response.is_success:
            logger.error("auth_request_failed", status=response.status_code)
            raise AppError(ErrorCode.UPSTREAM_ERROR, "Authentication service unavailable")

        data = response.json()
        if not data.get("id"):
            raise AppError(ErrorCode.AUTH_ERROR, "Invalid or expired token")
        return AuthUser(id=data["id"], email=data.get("email"))

    async def close(self):
        await self.client.aclose()


def get_profile(db: Session, user_id: str) -> Optional[ProfileModel]:
    return ProfileDB.get_profile(db, user_id)


def require_approved_profile(db: Session, user_id: str) -> ProfileModel:
    """
    Ensure the user's account has been approved

    Raises:
        AppError: FORBIDDEN_ERROR if the profile is missing or not approved
    """
    profile = get_profile(db, user_id)
    if profile is None or profile.status != ProfileStatus.APPROVED.value:
        logger.warning(
            "profile_not_approved",
            user_id=user_id,
            status=profile.status if profile else None,
        )
        raise AppError(ErrorCode.FORBIDDEN_ERROR, "Account pending approval")
    return profile
