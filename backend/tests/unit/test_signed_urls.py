"""
Unit Tests for SignedUrlManager
"""

from datetime import datetime, timedelta

import pytest

from scenegen.services.errors import AppError, ErrorCode
from scenegen.services.signed_urls import (
    SignedUrlManager,
    extract_storage_path,
    is_expired,
)
from scenegen.services.storage import MirrorDB, ProjectDB, SceneDB


NOW = datetime(2026, 1, 1, 12, 0, 0)


class _Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def _scene(db, seeded, **fields):
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
    if fields:
        scene = SceneDB.update_scene(db, scene.id, **fields)
    return scene


def test_is_expired():
    assert is_expired(None, NOW) is True
    assert is_expired(NOW, NOW) is True
    assert is_expired(NOW - timedelta(seconds=1), NOW) is True
    assert is_expired(NOW + timedelta(seconds=1), NOW) is False


def test_extract_storage_path():
    assert extract_storage_path("user/demo/photos/a.jpg") == "user/demo/photos/a.jpg"
    assert extract_storage_path("/user/demo/photos/a.jpg") == "user/demo/photos/a.jpg"
    assert extract_storage_path(
        "https://x.supabase.co/storage/v1/object/sign/media/user/demo/photos/a%20b.jpg?token=abc"
    ) == "user/demo/photos/a b.jpg"
    assert extract_storage_path(
        "https://x.supabase.co/storage/v1/object/public/public-media/user/a.jpg"
    ) == "user/a.jpg"
    assert extract_storage_path("https://example.com/image.jpg") == ""


@pytest.mark.asyncio
async def test_issue_sets_expiry(fake_storage):
    manager = SignedUrlManager(fake_storage, ttl_seconds=3600, delivery="signed", clock=_Clock())

    grant = await manager.issue("user/demo/photos/a.jpg")

    assert grant.object_key == "user/demo/photos/a.jpg"
    assert grant.url.startswith("https://storage.test/")
    assert grant.expires_at == NOW + timedelta(seconds=3600)


@pytest.mark.asyncio
async def test_issue_failure_raises_upstream_error(fake_storage):
    fake_storage.fail_sign = True
    manager = SignedUrlManager(fake_storage, delivery="signed", clock=_Clock())

    with pytest.raises(AppError) as exc_info:
        await manager.issue("user/demo/photos/a.jpg")

    assert exc_info.value.code == ErrorCode.UPSTREAM_ERROR
    assert exc_info.value.upstream.status == 400


@pytest.mark.asyncio
async def test_ensure_fresh_keeps_valid_grant(test_db_session, seeded, fake_storage):
    manager = SignedUrlManager(fake_storage, delivery="signed", clock=_Clock())
    scene = _scene(
        test_db_session,
        seeded,
        start_frame_url="https://storage.test/old-start",
        signed_url_expires_at=NOW + timedelta(minutes=5),
    )

    fresh = await manager.ensure_fresh(test_db_session, scene)

    assert fresh.start_frame_url == "https://storage.test/old-start"
    assert fake_storage.signed_keys == []


@pytest.mark.asyncio
async def test_expired_grant_is_reissued(test_db_session, seeded, fake_storage):
    clock = _Clock()
    manager = SignedUrlManager(fake_storage, ttl_seconds=3600, delivery="signed", clock=clock)
    scene = _scene(
        test_db_session,
        seeded,
        start_frame_url="https://storage.test/old-start",
        end_frame_url="https://storage.test/old-end",
        signed_url_expires_at=NOW,
    )

    fresh = await manager.ensure_fresh(test_db_session, scene)

    assert fresh.start_frame_url != "https://storage.test/old-start"
    assert fresh.end_frame_url != "https://storage.test/old-end"
    assert fresh.signed_url_expires_at == NOW + timedelta(seconds=3600)
    assert fake_storage.signed_keys == [seeded["start_key"], seeded["end_key"]]


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_urls(test_db_session, seeded, fake_storage):
    fake_storage.fail_sign = True
    manager = SignedUrlManager(fake_storage, delivery="signed", clock=_Clock())
    scene = _scene(
        test_db_session,
        seeded,
        start_frame_url="https://storage.test/old-start",
        signed_url_expires_at=NOW - timedelta(minutes=1),
    )

    refreshed = await manager.refresh(test_db_session, scene.id)

    assert refreshed is False
    assert SceneDB.get_scene(test_db_session, scene.id).start_frame_url == "https://storage.test/old-start"


@pytest.mark.asyncio
async def test_refresh_missing_scene(test_db_session, fake_storage):
    manager = SignedUrlManager(fake_storage, delivery="signed")

    assert await manager.refresh(test_db_session, "missing") is False


@pytest.mark.asyncio
async def test_mirror_public_copies_once(test_db_session, fake_storage):
    manager = SignedUrlManager(fake_storage, delivery="public_mirror")

    first = await manager.mirror_public(test_db_session, "user/demo/photos/a.jpg")
    second = await manager.mirror_public(test_db_session, "user/demo/photos/a.jpg")

    assert first == second
    assert len(fake_storage.copies) == 1
    assert MirrorDB.get_by_source(test_db_session, "user/demo/photos/a.jpg") is not None


@pytest.mark.asyncio
async def test_mirror_failure_raises(test_db_session, fake_storage):
    fake_storage.fail_copy = True
    manager = SignedUrlManager(fake_storage, delivery="public_mirror")

    with pytest.raises(AppError) as exc_info:
        await manager.mirror_public(test_db_session, "user/demo/photos/a.jpg")

    assert exc_info.value.code == ErrorCode.UPSTREAM_ERROR
    assert MirrorDB.get_by_source(test_db_session, "user/demo/photos/a.jpg") is None


@pytest.mark.asyncio
async def test_resolve_keyframes_by_policy(test_db_session, fake_storage):
    signed = SignedUrlManager(fake_storage, ttl_seconds=600, delivery="signed", clock=_Clock())
    mirrored = SignedUrlManager(fake_storage, delivery="public_mirror", clock=_Clock())

    signed_urls = await signed.resolve_keyframes(test_db_session, "u/p/photos/a.jpg", "u/p/photos/b.jpg")
    public_urls = await mirrored.resolve_keyframes(test_db_session, "u/p/photos/a.jpg", None)

    assert signed_urls.expires_at == NOW + timedelta(seconds=600)
    assert "/sign/" in signed_urls.end_url
    assert "/public/" in public_urls.start_url
    assert public_urls.end_url is None
    assert public_urls.expires_at is None
