from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from helpers import FAKE_FFMPEG, write_script
from media_tools.config import Settings
from media_tools.main import create_app


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> Path:
    return write_script(tmp_path / "bin", "ffmpeg", FAKE_FFMPEG)


@pytest.fixture
def settings(temp_root: Path, fake_ffmpeg: Path) -> Settings:
    return Settings(
        temp_root=temp_root,
        ffmpeg_binary=str(fake_ffmpeg),
        transform_timeout_seconds=10.0,
        max_concurrent_transforms=2,
        queue_timeout_seconds=1.0,
    )


@pytest.fixture
def make_client() -> Callable[[Settings], TestClient]:
    def factory(settings: Settings) -> TestClient:
        return TestClient(create_app(settings))

    return factory


@pytest.fixture
def client(settings: Settings, make_client) -> TestClient:
    return make_client(settings)
