"""
Unit Tests for Generation State Transitions
"""

import pytest

from scenegen.models.generation import GenerationStatus
from scenegen.models.scene import SceneStatus
from scenegen.services.generation_state import (
    GenerationStateError,
    allowed_sources,
    is_terminal_status,
    transition_generation,
)
from scenegen.services.storage import GenerationDB, ProjectDB, SceneDB


def _create_generation(db, seeded, status="queued"):
    project = seeded["project"]
    ordinal = ProjectDB.next_ordinal(db, project.id)
    scene = SceneDB.create_scene(
        db,
        owner_id=seeded["owner_id"],
        project_id=project.id,
        ordinal=ordinal,
        start_key=seeded["start_key"],
        end_key=None,
        shot_type_id=seeded["shot_type"].id,
        status=SceneStatus.QUEUED.value,
    )
    return GenerationDB.create_generation(
        db,
        scene_id=scene.id,
        version=1,
        status=status,
        idempotency_key="key",
    )


def test_transition_queued_to_processing(test_db_session, seeded):
    generation = _create_generation(test_db_session, seeded)

    applied = transition_generation(
        test_db_session,
        generation.generation_id,
        "processing",
        event="provider_submitted",
        provider_job_id="job-1",
    )

    updated = GenerationDB.get_generation(test_db_session, generation.generation_id)
    scene = SceneDB.get_scene(test_db_session, generation.scene_id)
    assert applied is True
    assert updated.status == "processing"
    assert updated.provider_job_id == "job-1"
    assert scene.status == "processing"


def test_completion_sets_completed_at_and_scene_ready(test_db_session, seeded):
    generation = _create_generation(test_db_session, seeded, status="processing")

    applied = transition_generation(
        test_db_session, generation.generation_id, "completed", event="done", video_key="k.mp4"
    )

    updated = GenerationDB.get_generation(test_db_session, generation.generation_id)
    scene = SceneDB.get_scene(test_db_session, generation.scene_id)
    assert applied is True
    assert updated.completed_at is not None
    assert updated.video_key == "k.mp4"
    assert scene.status == "ready"


@pytest.mark.parametrize("terminal", ["completed", "error"])
@pytest.mark.parametrize("target", ["processing", "completed", "error"])
def test_terminal_generation_never_changes(test_db_session, seeded, terminal, target):
    generation = _create_generation(test_db_session, seeded, status=terminal)

    applied = transition_generation(
        test_db_session, generation.generation_id, target, event="late_update", error_code="API_ERROR"
    )

    updated = GenerationDB.get_generation(test_db_session, generation.generation_id)
    assert applied is False
    assert updated.status == terminal
    assert updated.error_code is None


def test_processing_progress_updates_are_allowed(test_db_session, seeded):
    generation = _create_generation(test_db_session, seeded, status="processing")

    assert transition_generation(
        test_db_session, generation.generation_id, "processing", event="progress", progress_pct=40.0
    )

    updated = GenerationDB.get_generation(test_db_session, generation.generation_id)
    assert updated.progress_pct == 40.0


def test_queued_is_never_re_entered(test_db_session, seeded):
    generation = _create_generation(test_db_session, seeded, status="processing")

    assert transition_generation(test_db_session, generation.generation_id, "queued", event="x") is False


def test_unknown_generation(test_db_session):
    assert transition_generation(test_db_session, "missing", "processing", event="x") is False


def test_unknown_status_rejected():
    with pytest.raises(GenerationStateError):
        allowed_sources("finished")


def test_allowed_sources():
    assert allowed_sources(GenerationStatus.COMPLETED.value) == ["queued", "processing"]
    assert allowed_sources(GenerationStatus.QUEUED.value) == []


def test_is_terminal_status():
    assert is_terminal_status("completed") is True
    assert is_terminal_status("error") is True
    assert is_terminal_status("queued") is False
    assert is_terminal_status("processing") is False
