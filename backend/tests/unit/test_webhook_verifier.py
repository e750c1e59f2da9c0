"""
Unit Tests for WebhookVerifier
"""

import json

import httpx
import pytest

from scenegen.services.completion import CompletionHandler
from scenegen.services.storage import GenerationDB, ProjectDB, SceneDB
from scenegen.services.webhook_verifier import WebhookVerifier


SECRET = "whsec-test"


@pytest.fixture
def rendering_scene(test_db_session, seeded):
    db = test_db_session
    scene = SceneDB.create_scene(
        db,
        owner_id=seeded["owner_id"],
        project_id=seeded["project"].id,
        ordinal=ProjectDB.next_ordinal(db, seeded["project"].id),
        start_key=seeded["start_key"],
        end_key=seeded["end_key"],
        shot_type_id=seeded["shot_type"].id,
        status="processing",
    )
    generation = GenerationDB.create_generation(db, scene.id, 1, "processing", "key")
    return scene, generation


@pytest.fixture
def cdn_requests():
    return []


@pytest.fixture
def verifier(fake_storage, downloader_factory, cdn_requests):
    def handler(request):
        cdn_requests.append(str(request.url))
        return httpx.Response(200, content=b"rendered")

    completion = CompletionHandler(fake_storage, downloader_factory(handler))
    return WebhookVerifier(completion, secret=SECRET)


def _body(**fields) -> bytes:
    return json.dumps(fields).encode("utf-8")


def test_sign_and_verify(verifier):
    raw = b'{"sceneId": "abc", "version": 1}'
    signature = verifier.sign(raw)

    assert signature.startswith("sha256=")
    assert verifier.verify(raw, signature) is True
    assert verifier.verify(raw + b" ", signature) is False
    assert verifier.verify(raw, signature[len("sha256="):]) is False
    assert verifier.verify(raw, None) is False


def test_verify_without_secret(fake_storage):
    verifier = WebhookVerifier(CompletionHandler(fake_storage), secret="")
    raw = b"{}"

    assert verifier.verify(raw, verifier.sign(raw)) is False


@pytest.mark.asyncio
async def test_bad_signature_changes_nothing(test_db_session, rendering_scene, verifier, cdn_requests):
    scene, generation = rendering_scene
    raw = _body(sceneId=scene.id, version=1, videoUrl="https://cdn.test/v.mp4")

    outcome = await verifier.handle(test_db_session, raw, "sha256=" + "0" * 64)

    assert outcome.accepted is False
    assert outcome.reason == "invalid_signature"
    assert GenerationDB.get_generation(test_db_session, generation.generation_id).status == "processing"
    assert cdn_requests == []


@pytest.mark.asyncio
async def test_completion_with_video_url(test_db_session, seeded, rendering_scene, verifier, fake_storage):
    scene, generation = rendering_scene
    raw = _body(
        sceneId=scene.id,
        version=1,
        videoUrl="https://cdn.test/v.mp4",
        renderMeta={"duration": 5},
    )

    outcome = await verifier.handle(test_db_session, raw, verifier.sign(raw))

    key = f"users/{seeded['owner_id']}/Scenes/demo/scene-{scene.ordinal}-v1.mp4"
    assert outcome.accepted is True
    assert outcome.applied is True
    assert outcome.status == "completed"
    stored = GenerationDB.get_generation(test_db_session, generation.generation_id)
    assert stored.video_key == key
    assert stored.render_meta == {"duration": 5}
    assert fake_storage.objects[key][0] == b"rendered"
    assert SceneDB.get_scene(test_db_session, scene.id).status == "ready"


@pytest.mark.asyncio
async def test_completion_with_owned_video_key(test_db_session, seeded, rendering_scene, verifier, cdn_requests):
    scene, generation = rendering_scene
    key = f"users/{seeded['owner_id']}/Scenes/demo/scene-{scene.ordinal}-v1.mp4"
    raw = _body(sceneId=scene.id, version=1, videoKey=key, status="completed")

    outcome = await verifier.handle(test_db_session, raw, verifier.sign(raw))

    assert outcome.applied is True
    assert GenerationDB.get_generation(test_db_session, generation.generation_id).video_key == key
    assert cdn_requests == []


@pytest.mark.asyncio
async def test_foreign_video_key_is_rejected(test_db_session, rendering_scene, verifier):
    scene, generation = rendering_scene
    raw = _body(sceneId=scene.id, version=1, videoKey="users/someone-else/Scenes/x/scene-1-v1.mp4")

    outcome = await verifier.handle(test_db_session, raw, verifier.sign(raw))

    assert outcome.accepted is False
    assert outcome.reason == "missing_video"
    assert GenerationDB.get_generation(test_db_session, generation.generation_id).status == "processing"


@pytest.mark.asyncio
async def test_failed_status_marks_error(test_db_session, rendering_scene, verifier):
    scene, generation = rendering_scene
    raw = _body(sceneId=scene.id, version=1, status="failed", errorMessage="encoder crashed")

    outcome = await verifier.handle(test_db_session, raw, verifier.sign(raw))

    assert outcome.applied is True
    stored = GenerationDB.get_generation(test_db_session, generation.generation_id)
    assert stored.status == "error"
    assert stored.error_code == "API_ERROR"
    assert stored.error_message == "encoder crashed"


@pytest.mark.asyncio
async def test_terminal_generation_is_not_reverted(test_db_session, rendering_scene, verifier):
    scene, generation = rendering_scene
    done = _body(sceneId=scene.id, version=1, videoUrl="https://cdn.test/v.mp4")
    await verifier.handle(test_db_session, done, verifier.sign(done))

    late_failure = _body(sceneId=scene.id, version=1, status="failed")
    outcome = await verifier.handle(test_db_session, late_failure, verifier.sign(late_failure))

    assert outcome.accepted is True
    assert outcome.applied is False
    assert outcome.reason == "already_terminal"
    assert GenerationDB.get_generation(test_db_session, generation.generation_id).status == "completed"


@pytest.mark.asyncio
async def test_invalid_payload(test_db_session, verifier):
    raw = b'{"version": 0}'

    outcome = await verifier.handle(test_db_session, raw, verifier.sign(raw))

    assert outcome.accepted is False
    assert outcome.reason == "invalid_payload"


@pytest.mark.asyncio
async def test_unknown_scene_and_version(test_db_session, rendering_scene, verifier):
    scene, _ = rendering_scene
    missing_scene = _body(sceneId="nope", version=1, videoUrl="https://cdn.test/v.mp4")
    missing_version = _body(sceneId=scene.id, version=7, videoUrl="https://cdn.test/v.mp4")

    first = await verifier.handle(test_db_session, missing_scene, verifier.sign(missing_scene))
    second = await verifier.handle(test_db_session, missing_version, verifier.sign(missing_version))

    assert first.reason == "scene_not_found"
    assert second.reason == "generation_not_found"


@pytest.mark.asyncio
async def test_unsupported_status(test_db_session, rendering_scene, verifier):
    scene, _ = rendering_scene
    raw = _body(sceneId=scene.id, version=1, status="paused")

    outcome = await verifier.handle(test_db_session, raw, verifier.sign(raw))

    assert outcome.accepted is False
    assert outcome.reason == "unsupported_status"


@pytest.mark.asyncio
async def test_video_key_with_parent_segment_is_rejected(test_db_session, seeded, rendering_scene, verifier):
    scene, generation = rendering_scene
    raw = _body(
        sceneId=scene.id,
        version=1,
        videoKey=f"users/{seeded['owner_id']}/../user-999/Scenes/x/scene-1-v1.mp4",
    )

    outcome = await verifier.handle(test_db_session, raw, verifier.sign(raw))

    assert outcome.accepted is False
    assert outcome.reason == "missing_video"
    assert GenerationDB.get_generation(test_db_session, generation.generation_id).video_key is None
