import asyncio
from pathlib import Path

import pytest

from media_tools.config import Settings
from media_tools.errors import TransformFailed
from media_tools.models.job_contract import Artifact
from media_tools.services.result_streamer import ResultStreamer

SCOPE = {"type": "http", "method": "GET", "path": "/", "headers": [], "query_string": b""}


async def _receive():
    return {"type": "http.request", "body": b"", "more_body": False}


def _artifact(tmp_path: Path, body: bytes = b"payload-bytes") -> Artifact:
    path = tmp_path / "resized.webp"
    path.write_bytes(body)
    return Artifact(path=path, media_type="image/webp", download_name="resized.webp")


def test_completion_fires_once_after_successful_transfer(tmp_path: Path):
    outcomes = []
    messages = []
    response = ResultStreamer(Settings(stream_chunk_size=4)).stream(_artifact(tmp_path), outcomes.append)

    async def send(message):
        messages.append(message)

    asyncio.run(response(SCOPE, _receive, send))
    response.complete(True)

    assert outcomes == [True]
    headers = dict(messages[0]["headers"])
    assert headers[b"content-type"] == b"image/webp"
    assert b'attachment; filename="resized.webp"' in headers[b"content-disposition"]
    assert b"".join(m.get("body", b"") for m in messages[1:]) == b"payload-bytes"


def test_completion_fires_when_client_goes_away(tmp_path: Path):
    outcomes = []
    response = ResultStreamer(Settings()).stream(_artifact(tmp_path), outcomes.append)

    async def send(message):
        if message["type"] == "http.response.body":
            raise OSError("client disconnected")

    with pytest.raises(Exception):
        asyncio.run(response(SCOPE, _receive, send))

    assert outcomes == [False]


def test_completion_callback_errors_are_contained(tmp_path: Path, caplog):
    def broken(_succeeded: bool) -> None:
        raise RuntimeError("cleanup bug")

    response = ResultStreamer(Settings()).stream(_artifact(tmp_path), broken)

    async def send(message):
        return None

    asyncio.run(response(SCOPE, _receive, send))

    assert "stream.completion_callback_failed" in caplog.text


@pytest.mark.parametrize("body", [b"", None])
def test_missing_or_empty_artifact_fails_before_headers(tmp_path: Path, body):
    artifact = _artifact(tmp_path, body or b"")
    if body is None:
        artifact.path.unlink()

    with pytest.raises(TransformFailed):
        ResultStreamer(Settings()).stream(artifact, lambda ok: None)
