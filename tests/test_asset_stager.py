import io
from pathlib import Path

import pytest

from media_tools.config import Settings
from media_tools.errors import PayloadTooLarge
from media_tools.services.asset_stager import AssetStager
from media_tools.services.workspace_service import WorkspaceService


@pytest.fixture
def settings(temp_root: Path) -> Settings:
    return Settings(temp_root=temp_root, max_file_size_bytes=16)


@pytest.fixture
def workspaces(settings: Settings) -> WorkspaceService:
    return WorkspaceService(settings)


@pytest.fixture
def stager(settings: Settings) -> AssetStager:
    return AssetStager(settings)


def test_stage_generates_server_side_name(workspaces, stager):
    workspace = workspaces.create()

    asset = stager.stage(workspace, b"abc", ".WAV", display_name="../../etc/passwd.wav")

    assert asset.path.parent == workspace.path
    assert asset.path.suffix == ".wav"
    assert "passwd" not in asset.path.name
    assert asset.path.read_bytes() == b"abc"
    assert asset.display_name == "../../etc/passwd.wav"
    assert asset.size_bytes == 3


@pytest.mark.parametrize("extension", ["/../../x", ".ex e", ".averyveryverylongext", "", None])
def test_stage_falls_back_on_suspicious_extension(workspaces, stager, extension):
    workspace = workspaces.create()

    asset = stager.stage(workspace, b"abc", extension, fallback_extension=".bin")

    assert asset.path.suffix == ".bin"
    assert asset.path.parent == workspace.path


def test_stage_prefixes_ordinal(workspaces, stager):
    workspace = workspaces.create()

    assets = [stager.stage(workspace, b"x", ".mp3", ordinal=index) for index in range(3)]

    assert [a.path.name[:4] for a in assets] == ["000-", "001-", "002-"]
    assert sorted(a.path.name for a in assets) == [a.path.name for a in assets]


def test_stage_accepts_file_objects_and_paths(workspaces, stager, tmp_path: Path):
    workspace = workspaces.create()
    source = tmp_path / "source.pdf"
    source.write_bytes(b"%PDF-1.4")
    stream = io.BytesIO(b"stream-body")

    from_path = stager.stage(workspace, source, ".pdf")
    from_stream = stager.stage(workspace, stream, ".bin")

    assert from_path.path.read_bytes() == b"%PDF-1.4"
    assert from_stream.path.read_bytes() == b"stream-body"


def test_oversize_payload_is_rejected_before_writing(workspaces, stager):
    workspace = workspaces.create()

    with pytest.raises(PayloadTooLarge):
        stager.stage(workspace, io.BytesIO(b"x" * 17), ".bin")

    assert list(workspace.path.iterdir()) == []


def test_identical_client_names_never_collide(workspaces, stager):
    first_workspace = workspaces.create()
    second_workspace = workspaces.create()

    first = stager.stage(first_workspace, b"one", ".png", display_name="photo.png")
    second = stager.stage(second_workspace, b"two", ".png", display_name="photo.png")
    third = stager.stage(first_workspace, b"three", ".png", display_name="photo.png")

    assert len({first.path, second.path, third.path}) == 3
    assert first.path.read_bytes() == b"one"
    assert second.path.read_bytes() == b"two"
