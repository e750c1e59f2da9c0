"""
Signed URL Manager - Time-limited access to private keyframe images
"""

from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from urllib.parse import unquote, urlparse

from pydantic import BaseModel
from sqlalchemy.orm import Session

from scenegen.config.settings import settings
from scenegen.core.provider_client import body_snippet
from scenegen.models.scene import SceneModel
from scenegen.services.errors import AppError, ErrorCode, UpstreamInfo
from scenegen.services.object_storage import StorageClient, StorageError
from scenegen.services.observability import logger
from scenegen.services.storage import MirrorDB, SceneDB


class SignedGrant(BaseModel):
    """A URL valid until expires_at (never used at or after it)"""

    object_key: str
    url: str
    expires_at: Optional[datetime] = None


class KeyframeUrls(BaseModel):
    """Resolved start/end keyframe URLs for a scene"""

    start_url: str
    end_url: Optional[str] = None
    expires_at: Optional[datetime] = None


def extract_storage_path(url_or_key: str) -> str:
    """
    Convert a storage URL back to an object key

    Accepts a bare key or a URL of the form
    .../storage/v1/object/{sign|public|authenticated}/{bucket}/{key}.

    Args:
        url_or_key: Storage URL or object key

    Returns:
        Object key, or "" if the URL is not a storage object URL
    """
    if not url_or_key.startswith(("http://", "https://")):
        return url_or_key.lstrip("/")

    parts = urlparse(url_or_key).path.split("/")
    if "object" not in parts:
        return ""
    rest = parts[parts.index("object") + 1:]
    if rest and rest[0] in ("sign", "public", "authenticated"):
        rest = rest[1:]
    # Drop the bucket
    return unquote("/".join(rest[1:]))


def has_parent_segment(key: str) -> bool:
    """True if a storage key contains a ".." path segment"""
    return ".." in key.split("/")


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check whether a grant has expired

    Args:
        expires_at: Expiry time (naive UTC); missing counts as expired
        now: Current time (defaults to utcnow)

    Returns:
        True if the grant must not be used
    """
    if expires_at is None:
        return True
    return (now or datetime.utcnow()) >= expires_at


class SignedUrlManager:
    """
    Issue, refresh and mirror keyframe URLs

    Delivery policy comes from settings.keyframe_delivery: "signed" hands
    out short-lived signed URLs; "public_mirror" copies each source object
    to the public bucket once and reuses that URL.
    """

    def __init__(
        self,
        storage: StorageClient,
        ttl_seconds: Optional[int] = None,
        delivery: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.storage = storage
        self.ttl_seconds = ttl_seconds or settings.signed_url_ttl_seconds
        self.delivery = delivery or settings.keyframe_delivery
        self.clock = clock

    def is_expired(self, expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
        return is_expired(expires_at, now or self.clock())

    async def issue(self, object_key: str, ttl: Optional[int] = None) -> SignedGrant:
        """
        Issue a signed URL for object_key

        Args:
            object_key: Private object key
            ttl: Lifetime in seconds (defaults to settings.signed_url_ttl_seconds)

        Returns:
            SignedGrant

        Raises:
            AppError: UPSTREAM_ERROR if the storage service cannot sign
        """
        ttl = ttl or self.ttl_seconds
        issued_at = self.clock()
        try:
            url = await self.storage.create_signed_url(object_key, ttl)
        except StorageError as e:
            raise AppError(
                ErrorCode.UPSTREAM_ERROR,
                "Failed to create signed URL for keyframe",
                detail={"object_key": object_key},
                upstream=UpstreamInfo(
                    endpoint=e.endpoint,
                    status=e.status or 0,
                    body_snippet=body_snippet(e.body),
                ),
            ) from e

        return SignedGrant(
            object_key=object_key,
            url=url,
            expires_at=issued_at + timedelta(seconds=ttl),
        )

    async def mirror_public(self, db: Session, object_key: str) -> str:
        """
        Copy a private object to the public bucket once and return its URL

        Later calls for the same source object reuse the cached mirror.

        Raises:
            AppError: UPSTREAM_ERROR if the copy fails
        """
        mirror = MirrorDB.get_by_source(db, object_key)
        if mirror is not None:
            return mirror.public_url

        try:
            await self.storage.copy(object_key, object_key, destination_bucket=settings.public_bucket)
        except StorageError as e:
            raise AppError(
                ErrorCode.UPSTREAM_ERROR,
                "Failed to mirror keyframe to public storage",
                detail={"object_key": object_key},
                upstream=UpstreamInfo(
                    endpoint=e.endpoint,
                    status=e.status or 0,
                    body_snippet=body_snippet(e.body),
                ),
            ) from e

        public_url = self.storage.public_url(object_key, settings.public_bucket)
        MirrorDB.create_mirror(db, object_key, object_key, public_url)
        logger.info("keyframe_mirrored", object_key=object_key)
        return public_url

    async def resolve_keyframe_url(self, db: Session, object_key: str) -> Tuple[str, Optional[datetime]]:
        """
        Resolve the URL the provider should fetch for a keyframe

        Returns:
            (url, expires_at); expires_at is None for public mirrors
        """
        if self.delivery == "public_mirror":
            return await self.mirror_public(db, object_key), None
        grant = await self.issue(object_key)
        return grant.url, grant.expires_at

    async def resolve_keyframes(
        self,
        db: Session,
        start_key: str,
        end_key: Optional[str],
    ) -> KeyframeUrls:
        """Resolve both keyframes of a scene under the delivery policy"""
        start_url, expires_at = await self.resolve_keyframe_url(db, start_key)
        end_url = None
        if end_key:
            end_url, end_expires_at = await self.resolve_keyframe_url(db, end_key)
            if end_expires_at is not None and (expires_at is None or end_expires_at < expires_at):
                expires_at = end_expires_at
        return KeyframeUrls(start_url=start_url, end_url=end_url, expires_at=expires_at)

    def needs_refresh(self, scene: SceneModel) -> bool:
        if not scene.start_frame_url:
            return True
        if self.delivery == "public_mirror":
            return False
        return self.is_expired(scene.signed_url_expires_at)

    async def ensure_fresh(self, db: Session, scene: SceneModel) -> SceneModel:
        """
        Return the scene with keyframe URLs that are safe to hand out

        Raises:
            AppError: UPSTREAM_ERROR if reissuing fails
        """
        if not self.needs_refresh(scene):
            return scene

        urls = await self.resolve_keyframes(db, scene.start_key, scene.end_key)
        logger.info("signed_urls_reissued", scene_id=scene.id)
        return SceneDB.update_scene(
            db,
            scene.id,
            start_frame_url=urls.start_url,
            end_frame_url=urls.end_url,
            signed_url_expires_at=urls.expires_at,
        )

    async def refresh(self, db: Session, scene_id: str) -> bool:
        """
        Reissue a scene's keyframe URLs if they have expired

        Failures are logged and leave the previous URLs in place.

        Args:
            db: Database session
            scene_id: Scene identifier

        Returns:
            True if the scene now holds valid URLs
        """
        scene = SceneDB.get_scene(db, scene_id)
        if scene is None:
            logger.warning("signed_url_refresh_failed", scene_id=scene_id, reason="scene_not_found")
            return False

        try:
            await self.ensure_fresh(db, scene)
        except AppError as e:
            logger.error(
                "signed_url_refresh_failed",
                scene_id=scene_id,
                code=e.code.value,
                error=e.message,
            )
            return False
        return True
