import io
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.core.exceptions import NotFoundException, ValidationException, VersionConflictException
from app.schemas.app_version.app_version_schemas import AppVersionUpdatePayload
from app.services.app_version.app_version_service import build_apk_file_name, format_file_size
from tests.conftest import TEST_PRINCIPAL_ID


async def _register(version_service, tmp_path, version_code, payload=b"apk-bytes", version_name=None):
    artifact = tmp_path / f"artifact_{version_code}.apk"
    artifact.write_bytes(payload)
    return await version_service.register_version(
        artifact,
        version_code=version_code,
        version_name=version_name or f"1.{version_code}",
        release_notes=f"release {version_code}",
        is_mandatory=False,
        uploaded_by=TEST_PRINCIPAL_ID,
    )


def _upload_file(name: str, data: bytes, content_type: str = "application/octet-stream") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=name,
        headers=Headers({"content-type": content_type}),
    )


def test_build_apk_file_name_sanitizes_version_name():
    assert build_apk_file_name("1.2.3", epoch_ms=1700000000000) == "cmo_app_v1.2.3_1700000000000.apk"
    assert build_apk_file_name("2.0 beta/1", epoch_ms=1) == "cmo_app_v2.0_beta_1_1.apk"


@pytest.mark.parametrize("size, expected", [
    (0, "0 Bytes"),
    (None, "0 Bytes"),
    (512, "512 Bytes"),
    (1536, "1.5 KB"),
    (10 * 1024 * 1024, "10 MB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


async def test_register_version_moves_artifact_and_measures_size(version_service, upload_config, tmp_path):
    version = await _register(version_service, tmp_path, 5, payload=b"12345")

    final_path = Path(upload_config.apk_dir) / version.file_name
    assert final_path.read_bytes() == b"12345"
    assert not (tmp_path / "artifact_5.apk").exists()
    assert version.file_size == 5
    assert version.file_path == f"/uploads/apk/{version.file_name}"
    assert version.is_active == 1
    assert version.download_count == 0


@pytest.mark.parametrize("version_code", [4, 5])
async def test_register_version_requires_strictly_greater_code(version_service, upload_config, tmp_path, version_code):
    await _register(version_service, tmp_path, 5)

    with pytest.raises(VersionConflictException) as exc_info:
        await _register(version_service, tmp_path, version_code)
    assert exc_info.value.minimum == 5
    # 冲突时不移动文件
    assert (tmp_path / f"artifact_{version_code}.apk").exists()


async def test_register_version_accepts_next_code(version_service, tmp_path):
    await _register(version_service, tmp_path, 5)
    version = await _register(version_service, tmp_path, 6)
    assert version.version_code == 6


async def test_inactive_versions_do_not_block_lower_codes(version_service, tmp_path):
    newest = await _register(version_service, tmp_path, 9)
    await version_service.deactivate_version(newest.id)

    version = await _register(version_service, tmp_path, 7)
    assert version.version_code == 7


async def test_duplicate_code_of_inactive_version_is_conflict_and_file_discarded(
        version_service, upload_config, tmp_path
):
    old = await _register(version_service, tmp_path, 9)
    old_file_name = old.file_name
    await version_service.deactivate_version(old.id)

    with pytest.raises(VersionConflictException):
        await _register(version_service, tmp_path, 9, version_name="dup")

    # 只剩第一次登记的文件
    assert [p.name for p in Path(upload_config.apk_dir).iterdir()] == [old_file_name]


async def test_register_version_rejects_invalid_fields(version_service, tmp_path):
    with pytest.raises(ValidationException):
        await _register(version_service, tmp_path, 0)
    with pytest.raises(ValidationException):
        await _register(version_service, tmp_path, 3, version_name="  ")


async def test_check_for_update(version_service, tmp_path):
    empty = await version_service.check_for_update(1)
    assert empty.update_available is False
    assert empty.latest_version is None

    latest = await _register(version_service, tmp_path, 10)

    result = await version_service.check_for_update(9)
    assert result.update_available is True
    assert result.latest_version.version_code == 10
    assert result.latest_version.download_url == latest.file_path
    assert result.latest_version.is_mandatory is False

    up_to_date = await version_service.check_for_update(10)
    assert up_to_date.update_available is False
    assert up_to_date.latest_version is None


async def test_list_and_latest_skip_inactive_by_default(version_service, tmp_path):
    await _register(version_service, tmp_path, 1)
    second = await _register(version_service, tmp_path, 2)
    await version_service.deactivate_version(second.id)

    active = await version_service.list_versions()
    everything = await version_service.list_versions(include_inactive=True)
    latest = await version_service.get_latest_version()

    assert [v.version_code for v in active] == [1]
    assert [v.version_code for v in everything] == [2, 1]
    assert latest.version_code == 1
    assert latest.file_size_display == "9 Bytes"


async def test_update_version_changes_flags(version_service, tmp_path):
    version = await _register(version_service, tmp_path, 3)

    updated = await version_service.update_version(
        version.id, AppVersionUpdatePayload(releaseNotes="hotfix", isMandatory=True)
    )

    assert updated.release_notes == "hotfix"
    assert updated.is_mandatory is True
    assert updated.is_active is True


async def test_increment_download_count(version_service, repo_factory, tmp_path):
    version = await _register(version_service, tmp_path, 3)

    await version_service.increment_download_count(version.id)
    await version_service.increment_download_count(version.id)

    refreshed = await version_service.get_version(version.id)
    await repo_factory.get_session().refresh(refreshed)
    assert refreshed.download_count == 2

    with pytest.raises(NotFoundException):
        await version_service.increment_download_count(9999)


async def test_download_latest_counts_and_returns_path(version_service, tmp_path):
    with pytest.raises(NotFoundException):
        await version_service.download_latest()

    await _register(version_service, tmp_path, 3, payload=b"payload")
    version, path = await version_service.download_latest()

    assert path.read_bytes() == b"payload"
    assert path.name == version.file_name


async def test_delete_version_removes_record_and_file(version_service, upload_config, tmp_path):
    version = await _register(version_service, tmp_path, 3)
    file_path = Path(upload_config.apk_dir) / version.file_name

    await version_service.delete_version(version.id)

    assert not file_path.exists()
    with pytest.raises(NotFoundException):
        await version_service.get_version(version.id)


async def test_upload_version_streams_apk(version_service, upload_config):
    version = await version_service.upload_version(
        _upload_file("field-app.apk", b"direct-upload"),
        version_code=11,
        version_name="1.1",
        release_notes=None,
        is_mandatory=True,
        uploaded_by=TEST_PRINCIPAL_ID,
    )

    assert version.file_size == len(b"direct-upload")
    assert version.is_mandatory == 1
    assert list(Path(upload_config.temp_dir).iterdir()) == []


async def test_upload_version_rejects_non_apk_and_oversize(version_service, upload_config):
    with pytest.raises(ValidationException):
        await version_service.upload_version(
            _upload_file("notes.txt", b"text", "text/plain"),
            version_code=1, version_name="1.0", release_notes="", is_mandatory=False, uploaded_by=None,
        )

    with pytest.raises(ValidationException):
        await version_service.upload_version(
            _upload_file("big.apk", b"x" * (upload_config.max_apk_size + 1)),
            version_code=1, version_name="1.0", release_notes="", is_mandatory=False, uploaded_by=None,
        )
    assert list(Path(upload_config.temp_dir).iterdir()) == []
