from __future__ import annotations

import io
import math
import shutil
import struct
import wave
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi import status

from helpers import residual_entries

FFMPEG = shutil.which("ffmpeg")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(FFMPEG is None, reason="ffmpeg is not installed"),
]


def _tone(seconds: float = 0.5, frequency: float = 440.0, rate: int = 8000) -> bytes:
    frames = b"".join(
        struct.pack("<h", int(12000 * math.sin(2 * math.pi * frequency * i / rate)))
        for i in range(int(seconds * rate))
    )
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as out:
        out.setnchannels(1)
        out.setsampwidth(2)
        out.setframerate(rate)
        out.writeframes(frames)
    return buffer.getvalue()


@pytest.fixture
def real_client(settings, make_client):
    return make_client(replace(settings, ffmpeg_binary=FFMPEG, transform_timeout_seconds=60.0))


def test_compress_produces_mp3(real_client, temp_root: Path):
    response = real_client.post(
        "/audio/compress", files={"audio": ("tone.wav", _tone(), "audio/wav")}, data={"quality": "20"}
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.content[:3] == b"ID3" or response.content[0] == 0xFF
    assert residual_entries(temp_root) == []


def test_merge_concatenates_inputs(real_client, temp_root: Path):
    files = [("audios", ("tone.wav", _tone(frequency=f), "audio/wav")) for f in (220.0, 440.0)]

    response = real_client.post("/audio/merge", files=files)

    assert response.status_code == status.HTTP_200_OK
    assert len(response.content) > 0
    assert residual_entries(temp_root) == []


def test_garbage_input_reports_failure(real_client, temp_root: Path):
    response = real_client.post("/video", files={"video": ("clip.mp4", b"definitely not video", "video/mp4")})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.text.startswith("Video processing failed")
    assert str(temp_root) not in response.text
    assert residual_entries(temp_root) == []
