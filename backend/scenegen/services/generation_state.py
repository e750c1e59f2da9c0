"""
Generation State Management Service
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from scenegen.models.generation import GenerationModel, GenerationStatus, TERMINAL_STATUSES
from scenegen.models.scene import SceneStatus
from scenegen.services.observability import log_state_transition
from scenegen.services.storage import GenerationDB, SceneDB


class GenerationStateError(Exception):
    """Exception raised for transitions that can never be valid"""

    pass


# Valid state transitions
VALID_TRANSITIONS: Dict[str, List[str]] = {
    GenerationStatus.QUEUED.value: [
        GenerationStatus.PROCESSING.value,
        GenerationStatus.COMPLETED.value,
        GenerationStatus.ERROR.value,
    ],
    GenerationStatus.PROCESSING.value: [
        GenerationStatus.PROCESSING.value,  # Progress updates
        GenerationStatus.COMPLETED.value,
        GenerationStatus.ERROR.value,
    ],
    GenerationStatus.COMPLETED.value: [],  # Terminal state
    GenerationStatus.ERROR.value: [],  # Terminal state
}

# Scene status mirrored from its latest generation
SCENE_STATUS_FOR: Dict[str, str] = {
    GenerationStatus.QUEUED.value: SceneStatus.QUEUED.value,
    GenerationStatus.PROCESSING.value: SceneStatus.PROCESSING.value,
    GenerationStatus.COMPLETED.value: SceneStatus.READY.value,
    GenerationStatus.ERROR.value: SceneStatus.ERROR.value,
}


def allowed_sources(new_status: str) -> List[str]:
    """
    Statuses from which new_status may be entered

    Args:
        new_status: Target status

    Returns:
        List of source statuses

    Raises:
        GenerationStateError: If new_status is not a known status
    """
    if new_status not in VALID_TRANSITIONS:
        raise GenerationStateError(f"Unknown generation status: {new_status}")
    return [source for source, targets in VALID_TRANSITIONS.items() if new_status in targets]


def transition_generation(
    db: Session,
    generation_id: str,
    new_status: str,
    event: str,
    **fields: Any,
) -> bool:
    """
    Move a generation to new_status with a conditional update

    The update only matches rows whose current status may legally move to
    new_status, so a terminal generation is never changed and concurrent
    writers (poller and webhook) cannot both complete the same row.

    Args:
        db: Database session
        generation_id: Generation identifier
        new_status: Target status
        event: Event triggering the transition
        **fields: Extra generation columns to set with the status

    Returns:
        True if the transition was applied
    """
    new_status = GenerationStatus(new_status).value
    sources = allowed_sources(new_status)

    values = dict(fields)
    values["status"] = new_status
    if new_status in TERMINAL_STATUSES:
        values.setdefault("completed_at", datetime.utcnow())

    applied = GenerationDB.conditional_update(db, generation_id, sources, values)
    log_state_transition(
        generation_id=generation_id,
        from_statuses=sources,
        to_status=new_status,
        event=event,
        applied=applied,
    )

    if applied:
        generation = GenerationDB.get_generation(db, generation_id)
        sync_scene_status(db, generation)
    return applied


def sync_scene_status(db: Session, generation: Optional[GenerationModel]) -> None:
    """Mirror a generation's status onto its scene if it is the current version"""
    if generation is None:
        return
    scene = SceneDB.get_scene(db, generation.scene_id, include_deleted=True)
    if scene is None or scene.version != generation.version:
        return
    scene_status = SCENE_STATUS_FOR[generation.status]
    if scene.status != scene_status:
        SceneDB.update_scene(db, scene.id, status=scene_status)


def is_terminal_status(status: str) -> bool:
    """
    Check if status is a terminal status

    Args:
        status: Generation status

    Returns:
        True if status is completed or error
    """
    return status in TERMINAL_STATUSES
