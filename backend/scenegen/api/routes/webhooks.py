"""
Webhook API Routes
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from scenegen.api.dependencies import get_webhook_verifier
from scenegen.config.settings import settings
from scenegen.models import get_db
from scenegen.services.errors import AppError, ErrorCode, ok_envelope
from scenegen.services.webhook_verifier import WebhookVerifier


router = APIRouter()

REJECTION_CODES = {
    "invalid_signature": (ErrorCode.AUTH_ERROR, "Invalid signature"),
    "invalid_payload": (ErrorCode.VALIDATION_ERROR, "Invalid callback payload"),
    "missing_video": (ErrorCode.VALIDATION_ERROR, "Either videoUrl or videoKey must be provided"),
    "unsupported_status": (ErrorCode.VALIDATION_ERROR, "Unsupported callback status"),
    "scene_not_found": (ErrorCode.NOT_FOUND, "Scene not found"),
    "generation_not_found": (ErrorCode.NOT_FOUND, "Generation not found"),
}


@router.post("/webhooks/render")
async def render_callback(
    request: Request,
    db: Session = Depends(get_db),
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
):
    """
    Receive a signed render completion callback

    The signature is checked against the exact raw body before it is parsed.
    """
    raw_body = await request.body()
    signature = request.headers.get(settings.webhook_signature_header)

    outcome = await verifier.handle(db, raw_body, signature)
    if not outcome.accepted:
        code, message = REJECTION_CODES.get(
            outcome.reason, (ErrorCode.VALIDATION_ERROR, "Callback rejected")
        )
        raise AppError(code, message, detail={"reason": outcome.reason})

    return ok_envelope(
        {
            "sceneId": outcome.scene_id,
            "generationId": outcome.generation_id,
            "status": outcome.status,
            "applied": outcome.applied,
            "reason": outcome.reason,
        }
    )
