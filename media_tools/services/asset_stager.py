from __future__ import annotations

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Union

from media_tools.config import Settings
from media_tools.errors import PayloadTooLarge, ResourceError
from media_tools.models.job_contract import StagedAsset, Workspace
from media_tools.utils.filesystem import sanitize_extension

logger = logging.getLogger(__name__)

Payload = Union[bytes, BinaryIO, Path]


class AssetStager:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def check_size(self, payload: Payload, label: str = "upload") -> int:
        size = _payload_size(payload)
        limit = self.settings.max_file_size_bytes
        if size > limit:
            raise PayloadTooLarge(f"File {label} exceeds the maximum size of {limit} bytes")
        return size

    def stage(
        self,
        workspace: Workspace,
        payload: Payload,
        desired_extension: str | None,
        *,
        ordinal: int | None = None,
        display_name: str | None = None,
        fallback_extension: str = ".bin",
    ) -> StagedAsset:
        size = self.check_size(payload, display_name or "upload")
        extension = sanitize_extension(desired_extension, fallback_extension)
        prefix = f"{ordinal:03d}-" if ordinal is not None else ""
        target = workspace.path / f"{prefix}{uuid.uuid4().hex}{extension}"

        try:
            _write_payload(payload, target, self.settings.stream_chunk_size)
        except OSError as exc:
            raise ResourceError(f"Could not stage upload: {exc.strerror or exc}") from exc

        logger.debug("asset.staged %s/%s bytes=%d", workspace.name, target.name, size)
        return StagedAsset(
            path=target,
            extension=extension,
            size_bytes=size,
            ordinal=ordinal,
            display_name=display_name,
        )


def _payload_size(payload: Payload) -> int:
    if isinstance(payload, (bytes, bytearray)):
        return len(payload)
    if isinstance(payload, Path):
        return payload.stat().st_size
    position = payload.tell()
    payload.seek(0, os.SEEK_END)
    size = payload.tell()
    payload.seek(position)
    return size - position


def _write_payload(payload: Payload, target: Path, chunk_size: int) -> None:
    if isinstance(payload, (bytes, bytearray)):
        target.write_bytes(payload)
    elif isinstance(payload, Path):
        shutil.copyfile(payload, target)
    else:
        with target.open("xb") as buffer:
            shutil.copyfileobj(payload, buffer, length=chunk_size)
