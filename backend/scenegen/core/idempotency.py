"""
Idempotency Key - Stable fingerprint of a submission's inputs
"""

import hashlib
import json
from typing import Optional


def compute_idempotency_key(
    owner_id: str,
    project_id: str,
    start_key: str,
    end_key: Optional[str],
    shot_type_id: str,
    prompt: str,
) -> str:
    """
    Compute the idempotency key of a scene submission

    The inputs are serialized as canonical JSON (sorted keys, no
    whitespace) before hashing, so identical inputs always produce the
    same key.

    Args:
        owner_id: Submitting user
        project_id: Target project
        start_key: Start keyframe storage key
        end_key: End keyframe storage key (optional)
        shot_type_id: Shot type ID
        prompt: Resolved prompt text

    Returns:
        SHA-256 hex digest
    """
    canonical = json.dumps(
        {
            "owner_id": owner_id,
            "project_id": project_id,
            "start_key": start_key,
            "end_key": end_key,
            "shot_type_id": shot_type_id,
            "prompt": prompt,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
