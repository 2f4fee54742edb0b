from datetime import timedelta
from pathlib import Path

import pytest

from app.core.exceptions import (
    IncompleteUploadException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
    VersionConflictException,
)
from app.enums.upload_enums import UploadStatus
from tests.conftest import TEST_PRINCIPAL_ID


async def _init(chunk_service, total_chunks=3, version_code=42, file_size=9):
    return await chunk_service.init_upload(
        file_name="app.apk",
        declared_file_size=file_size,
        total_chunks=total_chunks,
        version_code=version_code,
        version_name="4.2",
        release_notes="notes",
        is_mandatory=False,
        uploaded_by=TEST_PRINCIPAL_ID,
    )


def _apk_bytes(upload_config, version) -> bytes:
    return (Path(upload_config.apk_dir) / version.file_name).read_bytes()


async def test_init_upload_persists_declared_metadata(chunk_service, session_store):
    session = await _init(chunk_service)

    stored = await session_store.get(session.upload_id)
    assert stored.total_chunks == 3
    assert stored.version_code == 42
    assert stored.release_notes == "notes"
    assert stored.received_chunks == set()
    assert stored.status == UploadStatus.UPLOADING


@pytest.mark.parametrize("overrides", [
    {"file_name": ""},
    {"declared_file_size": 0},
    {"total_chunks": 0},
    {"total_chunks": 101},
    {"version_code": 0},
    {"version_name": "  "},
])
async def test_init_upload_rejects_missing_fields(chunk_service, overrides):
    kwargs = dict(
        file_name="app.apk", declared_file_size=9, total_chunks=3,
        version_code=42, version_name="4.2", release_notes="", is_mandatory=False,
    )
    kwargs.update(overrides)
    with pytest.raises(ValidationException):
        await chunk_service.init_upload(**kwargs)


async def test_scenario_three_chunks_become_version(chunk_service, version_service, upload_config):
    session = await _init(chunk_service)
    for index, payload in enumerate([b"AAA", b"BBB", b"CCC"]):
        result = await chunk_service.upload_chunk(session.upload_id, index, payload)
        assert result.received_count == index + 1
        assert result.total_chunks == 3

    version = await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)

    assert version.file_size == 9
    assert version.version_code == 42
    assert version.is_active == 1
    assert version.download_count == 0
    assert version.uploaded_by == TEST_PRINCIPAL_ID
    assert _apk_bytes(upload_config, version) == b"AAABBBCCC"

    update = await version_service.check_for_update(41)
    assert update.update_available is True
    assert update.latest_version.version_code == 42


async def test_out_of_order_and_duplicate_chunks_assemble_in_index_order(chunk_service, upload_config):
    session = await _init(chunk_service)
    await chunk_service.upload_chunk(session.upload_id, 2, b"CCC")
    await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")
    await chunk_service.upload_chunk(session.upload_id, 2, b"CCC")
    result = await chunk_service.upload_chunk(session.upload_id, 1, b"BBB")
    assert result.received_count == 3

    version = await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)
    assert _apk_bytes(upload_config, version) == b"AAABBBCCC"


async def test_reuploading_an_index_keeps_the_last_bytes(chunk_service, upload_config):
    session = await _init(chunk_service)
    await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")
    await chunk_service.upload_chunk(session.upload_id, 1, b"BBB")
    await chunk_service.upload_chunk(session.upload_id, 1, b"XYZ")
    await chunk_service.upload_chunk(session.upload_id, 2, b"CCC")

    version = await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)
    assert _apk_bytes(upload_config, version) == b"AAAXYZCCC"


async def test_same_chunk_twice_does_not_change_received_count(chunk_service):
    session = await _init(chunk_service)
    first = await chunk_service.upload_chunk(session.upload_id, 1, b"BBB")
    second = await chunk_service.upload_chunk(session.upload_id, 1, b"BBB")
    assert first.received_count == second.received_count == 1

    status = await chunk_service.get_upload_status(session.upload_id)
    assert status.received_chunks == [1]
    assert status.missing_chunks == [0, 2]
    assert status.progress_percent == pytest.approx(33.33)


async def test_upload_chunk_validation(chunk_service):
    session = await _init(chunk_service)
    with pytest.raises(ValidationException):
        await chunk_service.upload_chunk(session.upload_id, 0, b"")
    with pytest.raises(ValidationException):
        await chunk_service.upload_chunk(session.upload_id, 3, b"AAA")
    with pytest.raises(ValidationException):
        await chunk_service.upload_chunk(session.upload_id, -1, b"AAA")
    with pytest.raises(ValidationException):
        await chunk_service.upload_chunk(session.upload_id, 0, b"x" * 17)


async def test_unknown_or_malformed_upload_id_is_not_found(chunk_service):
    with pytest.raises(NotFoundException):
        await chunk_service.upload_chunk("0" * 32, 0, b"AAA")
    with pytest.raises(NotFoundException):
        await chunk_service.get_upload_status("../../etc")


async def test_complete_requires_every_chunk(chunk_service):
    session = await _init(chunk_service)
    await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")
    await chunk_service.upload_chunk(session.upload_id, 2, b"CCC")

    with pytest.raises(IncompleteUploadException) as exc_info:
        await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)
    assert exc_info.value.extra["expected"] == 3
    assert exc_info.value.extra["received"] == 2
    assert exc_info.value.extra["missing"] == [1]


async def test_chunks_rejected_while_completing(chunk_service, session_store):
    session = await _init(chunk_service, total_chunks=1, file_size=3)
    await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")
    await session_store.begin_completion(session.upload_id, 600)

    with pytest.raises(InvalidStateException):
        await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")
    with pytest.raises(InvalidStateException):
        await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)


async def test_failed_registration_keeps_chunks_for_retry(
        chunk_service, version_service, repo_factory, session_store, upload_config, tmp_path
):
    blocker_path = tmp_path / "blocker.apk"
    blocker_path.write_bytes(b"old")
    blocker = await version_service.register_version(
        blocker_path, version_code=50, version_name="5.0",
        release_notes="", is_mandatory=False, uploaded_by=TEST_PRINCIPAL_ID,
    )
    blocker_id = blocker.id

    session = await _init(chunk_service)
    for index, payload in enumerate([b"AAA", b"BBB", b"CCC"]):
        await chunk_service.upload_chunk(session.upload_id, index, payload)

    with pytest.raises(VersionConflictException) as exc_info:
        await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)
    assert exc_info.value.extra["minimum_exclusive"] == 50

    # 合并产物被删除，分片与会话仍在，状态回到 uploading
    assert not (Path(upload_config.temp_dir) / f"assembled_{session.upload_id}.apk").exists()
    restored = await session_store.get(session.upload_id)
    assert restored.status == UploadStatus.UPLOADING
    assert restored.received_chunks == {0, 1, 2}

    await version_service.delete_version(blocker_id)
    await repo_factory.commit()

    version = await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)
    assert _apk_bytes(upload_config, version) == b"AAABBBCCC"
    assert await session_store.get(session.upload_id) is None
    assert not (Path(upload_config.chunk_dir) / session.upload_id).exists()


async def test_successful_complete_removes_session(chunk_service, upload_config):
    session = await _init(chunk_service, total_chunks=1, file_size=3)
    await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")
    await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)

    with pytest.raises(NotFoundException):
        await chunk_service.get_upload_status(session.upload_id)
    with pytest.raises(NotFoundException):
        await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)


async def test_abort_upload_removes_chunks(chunk_service, upload_config):
    session = await _init(chunk_service)
    await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")

    await chunk_service.abort_upload(session.upload_id)

    assert not (Path(upload_config.chunk_dir) / session.upload_id).exists()
    with pytest.raises(NotFoundException):
        await chunk_service.get_upload_status(session.upload_id)


async def test_abort_is_rejected_while_completing(chunk_service, session_store):
    session = await _init(chunk_service, total_chunks=1, file_size=3)
    await chunk_service.upload_chunk(session.upload_id, 0, b"AAA")
    await session_store.begin_completion(session.upload_id, 600)

    with pytest.raises(InvalidStateException):
        await chunk_service.abort_upload(session.upload_id)
    assert (await session_store.get(session.upload_id)).received_chunks == {0}


async def test_abort_after_stale_completion_marker_is_allowed(chunk_service, session_store):
    session = await _init(chunk_service, total_chunks=1, file_size=3)
    claimed = await session_store.begin_completion(session.upload_id, 600)
    claimed.completing_since = claimed.completing_since - timedelta(
        seconds=chunk_service.upload_config.assembly_timeout_seconds + 1
    )
    await session_store.put(claimed)

    await chunk_service.abort_upload(session.upload_id)
    assert await session_store.get(session.upload_id) is None


async def test_abort_during_failed_registration_keeps_the_session(
        chunk_service, session_store, upload_config, monkeypatch
):
    session = await _init(chunk_service)
    for index, payload in enumerate([b"AAA", b"BBB", b"CCC"]):
        await chunk_service.upload_chunk(session.upload_id, index, payload)
    abort_errors = []

    async def register_then_fail(*args, **kwargs):
        try:
            await chunk_service.abort_upload(session.upload_id)
        except InvalidStateException as e:
            abort_errors.append(e)
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(chunk_service.version_service, "register_version", register_then_fail)
    with pytest.raises(RuntimeError):
        await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)

    assert len(abort_errors) == 1
    restored = await session_store.get(session.upload_id)
    assert restored.status == UploadStatus.UPLOADING
    assert restored.received_chunks == {0, 1, 2}

    monkeypatch.undo()
    version = await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)
    assert _apk_bytes(upload_config, version) == b"AAABBBCCC"


async def test_failed_completion_does_not_revive_a_removed_session(chunk_service, session_store, monkeypatch):
    session = await _init(chunk_service)
    for index, payload in enumerate([b"AAA", b"BBB", b"CCC"]):
        await chunk_service.upload_chunk(session.upload_id, index, payload)

    async def remove_then_fail(*args, **kwargs):
        await session_store.delete(session.upload_id)
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(chunk_service.version_service, "register_version", remove_then_fail)
    with pytest.raises(RuntimeError):
        await chunk_service.complete_upload(session.upload_id, principal_id=TEST_PRINCIPAL_ID)

    assert await session_store.get(session.upload_id) is None
    assert session.upload_id not in await session_store.list_ids()


async def test_cleanup_stale_sessions_only_removes_old_ones(chunk_service, session_store):
    fresh = await _init(chunk_service)
    stale = await _init(chunk_service)
    old_session = await session_store.get(stale.upload_id)
    old_session.updated_at = old_session.updated_at.replace(year=old_session.updated_at.year - 1)
    await session_store.put(old_session)

    result = await chunk_service.cleanup_stale_sessions(max_age_hours=24)

    assert result.removed == 1
    assert result.upload_ids == [stale.upload_id]
    assert await session_store.get(fresh.upload_id) is not None
    assert await session_store.get(stale.upload_id) is None

    with pytest.raises(ValidationException):
        await chunk_service.cleanup_stale_sessions(max_age_hours=0)
