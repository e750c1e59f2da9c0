"""
Webhook Verifier - Authenticate and apply render pipeline callbacks
"""

import hashlib
import hmac
import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from scenegen.config.settings import settings
from scenegen.services.completion import CompletionHandler
from scenegen.services.errors import ErrorCode
from scenegen.services.observability import logger
from scenegen.services.signed_urls import has_parent_segment
from scenegen.services.storage import GenerationDB, SceneDB

SIGNATURE_PREFIX = "sha256="

COMPLETED_STATUSES = frozenset({"ready", "completed"})
FAILED_STATUSES = frozenset({"error", "failed"})


class WebhookPayload(BaseModel):
    """Render callback body"""

    scene_id: str = Field(alias="sceneId")
    version: int = Field(ge=1)
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    video_key: Optional[str] = Field(default=None, alias="videoKey")
    render_meta: Optional[Dict[str, Any]] = Field(default=None, alias="renderMeta")
    status: str = "ready"
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class WebhookOutcome(BaseModel):
    """Result of handling a callback"""

    accepted: bool
    reason: str
    applied: bool = False
    status: Optional[str] = None
    scene_id: Optional[str] = None
    generation_id: Optional[str] = None


class WebhookVerifier:
    """
    Verify HMAC-SHA256 signatures and apply authenticated callbacks

    Signatures are computed over the exact raw body and sent as
    "sha256=<hex>". Rejected callbacks never change state.
    """

    def __init__(self, completion: CompletionHandler, secret: Optional[str] = None):
        self.completion = completion
        self.secret = secret if secret is not None else settings.webhook_secret

    def sign(self, raw_body: bytes) -> str:
        """Header value for raw_body"""
        digest = hmac.new(self.secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    @staticmethod
    def _owned_video_key(video_key: Optional[str], owner_id: str) -> bool:
        if not video_key or has_parent_segment(video_key):
            return False
        return video_key.startswith(f"users/{owner_id}/")

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        """
        Check a callback signature

        Args:
            raw_body: Exact request body bytes
            signature_header: Signature header value

        Returns:
            True only for a present, well-formed, matching signature
        """
        if not self.secret:
            logger.error("webhook_secret_not_configured")
            return False
        if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
            return False

        received = signature_header[len(SIGNATURE_PREFIX):].strip()
        expected = hmac.new(self.secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, received)

    async def handle(
        self,
        db: Session,
        raw_body: bytes,
        signature_header: Optional[str],
    ) -> WebhookOutcome:
        """
        Verify and apply a render callback

        Args:
            db: Database session
            raw_body: Exact request body bytes
            signature_header: Signature header value

        Returns:
            WebhookOutcome describing what happened
        """
        if not self.verify(raw_body, signature_header):
            logger.warning("webhook_rejected", reason="invalid_signature")
            return WebhookOutcome(accepted=False, reason="invalid_signature")

        try:
            payload = WebhookPayload.model_validate(json.loads(raw_body))
        except (ValueError, ValidationError) as e:
            logger.warning("webhook_rejected", reason="invalid_payload", error=str(e))
            return WebhookOutcome(accepted=False, reason="invalid_payload")

        log = logger.bind(scene_id=payload.scene_id, version=payload.version)

        scene = SceneDB.get_scene(db, payload.scene_id, include_deleted=True)
        if scene is None:
            log.warning("webhook_rejected", reason="scene_not_found")
            return WebhookOutcome(accepted=False, reason="scene_not_found", scene_id=payload.scene_id)

        generation = GenerationDB.get_by_version(db, scene.id, payload.version)
        if generation is None:
            log.warning("webhook_rejected", reason="generation_not_found")
            return WebhookOutcome(accepted=False, reason="generation_not_found", scene_id=scene.id)

        generation_id = generation.generation_id
        status = payload.status.lower()

        if generation.is_terminal:
            log.info("webhook_ignored", reason="already_terminal", status=generation.status)
            return WebhookOutcome(
                accepted=True,
                reason="already_terminal",
                status=generation.status,
                scene_id=scene.id,
                generation_id=generation_id,
            )

        if status in COMPLETED_STATUSES:
            if payload.video_url:
                applied = await self.completion.complete_with_remote_video(
                    db, generation, payload.video_url, event="webhook_completed",
                    render_meta=payload.render_meta,
                )
            elif self._owned_video_key(payload.video_key, scene.owner_id):
                applied = self.completion.complete_with_stored_video(
                    db, generation, payload.video_key, event="webhook_completed",
                    render_meta=payload.render_meta,
                )
            else:
                log.warning("webhook_rejected", reason="missing_video")
                return WebhookOutcome(
                    accepted=False, reason="missing_video", scene_id=scene.id, generation_id=generation_id
                )
        elif status in FAILED_STATUSES:
            applied = self.completion.fail(
                db,
                generation,
                ErrorCode.API_ERROR.value,
                payload.error_message or "Render pipeline reported failure",
                event="webhook_failed",
                render_meta=payload.render_meta,
            )
        else:
            log.warning("webhook_rejected", reason="unsupported_status", status=status)
            return WebhookOutcome(
                accepted=False, reason="unsupported_status", scene_id=scene.id, generation_id=generation_id
            )

        current = GenerationDB.get_generation(db, generation_id)
        log.info("webhook_applied", applied=applied, status=current.status)
        return WebhookOutcome(
            accepted=True,
            reason="applied" if applied else "already_terminal",
            applied=applied,
            status=current.status,
            scene_id=scene.id,
            generation_id=generation_id,
        )
