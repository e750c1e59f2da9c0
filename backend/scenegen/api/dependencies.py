"""
FastAPI dependencies - shared clients, services and the current user
"""

from functools import lru_cache

from fastapi import Depends, Request

from scenegen.core.provider_client import ProviderClient
from scenegen.services.auth import AuthClient, AuthUser
from scenegen.services.completion import CompletionHandler
from scenegen.services.errors import new_correlation_id
from scenegen.services.job_submitter import JobSubmitter
from scenegen.services.object_storage import StorageClient
from scenegen.services.rate_limiter import RateLimiter, get_rate_limiter
from scenegen.services.signed_urls import SignedUrlManager
from scenegen.services.status_poller import StatusPoller
from scenegen.services.video_downloader import VideoDownloader
from scenegen.services.webhook_verifier import WebhookVerifier


@lru_cache
def get_storage() -> StorageClient:
    return StorageClient()


@lru_cache
def get_provider() -> ProviderClient:
    return ProviderClient()


@lru_cache
def get_auth_client() -> AuthClient:
    return AuthClient()


@lru_cache
def get_downloader() -> VideoDownloader:
    return VideoDownloader()


def get_limiter() -> RateLimiter:
    return get_rate_limiter()


def get_url_manager(storage: StorageClient = Depends(get_storage)) -> SignedUrlManager:
    return SignedUrlManager(storage)


def get_completion(
    storage: StorageClient = Depends(get_storage),
    downloader: VideoDownloader = Depends(get_downloader),
) -> CompletionHandler:
    return CompletionHandler(storage, downloader)


def get_submitter(
    provider: ProviderClient = Depends(get_provider),
    url_manager: SignedUrlManager = Depends(get_url_manager),
) -> JobSubmitter:
    return JobSubmitter(provider, url_manager)


def get_poller(
    provider: ProviderClient = Depends(get_provider),
    completion: CompletionHandler = Depends(get_completion),
) -> StatusPoller:
    return StatusPoller(provider, completion)


def get_webhook_verifier(completion: CompletionHandler = Depends(get_completion)) -> WebhookVerifier:
    return WebhookVerifier(completion)


def get_correlation_id(request: Request) -> str:
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id is None:
        correlation_id = new_correlation_id()
        request.state.correlation_id = correlation_id
    return correlation_id


async def get_current_user(
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
) -> AuthUser:
    """Resolve the bearer token on the request"""
    header = request.headers.get("Authorization", "")
    token = header[len("Bearer "):].strip() if header.startswith("Bearer ") else None
    user = await auth.get_user(token)
    request.state.user_id = user.id
    return user
