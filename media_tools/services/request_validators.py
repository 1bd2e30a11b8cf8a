"""Parsing of raw multipart form values into validated job parameters.

Numeric tuning knobs (quality, font size, opacity) are clamped into range so a
sloppy client still gets a result. Geometry (width, height, resolution) and
enumerations are rejected instead, since a guessed value would silently
produce the wrong artifact.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TypeVar

from starlette.datastructures import UploadFile

from media_tools.engines.ffmpeg_commands import parse_resolution
from media_tools.errors import MissingInput, ValidationError
from media_tools.models.job_contract import VIDEO_FORMATS, WATERMARK_POSITIONS

N = TypeVar("N", int, float)

_LEADING_INT = re.compile(r"\s*[+-]?\d+")


def _is_upload(value: object) -> bool:
    return isinstance(value, UploadFile) and bool(value.filename)


def require_file(upload: UploadFile | None, field: str, message: str) -> UploadFile:
    if upload is None or not _is_upload(upload):
        raise MissingInput(field, message)
    return upload


def require_files(
    uploads: Sequence[UploadFile] | None,
    field: str,
    *,
    min_count: int,
    max_count: int | None = None,
    message: str,
) -> list[UploadFile]:
    files = [item for item in (uploads or []) if _is_upload(item)]
    if len(files) < min_count:
        raise MissingInput(field, message)
    if max_count is not None and len(files) > max_count:
        raise ValidationError(f"At most {max_count} files may be uploaded in {field}")
    return files


def require_text(raw: str | None, field: str) -> str:
    if raw is None or not raw.strip():
        raise MissingInput(field)
    return raw


def _clamp(value: N, low: N, high: N) -> N:
    return max(low, min(high, value))


def clamped_int(raw: str | None, *, default: int, low: int, high: int) -> int:
    """Read the leading integer of ``raw`` ("80abc" is 80); absent, unparsable or zero means ``default``."""
    match = _LEADING_INT.match(raw or "")
    value = int(match.group(0)) if match else 0
    return _clamp(value or default, low, high)


def clamped_float(raw: str | None, *, default: float, low: float, high: float) -> float:
    try:
        value = float(raw) if raw is not None and raw.strip() else default
    except (TypeError, ValueError):
        value = default
    if value != value:  # NaN
        value = default
    return _clamp(value, low, high)


def positive_dimension(raw: str | None, field: str) -> int:
    if raw is None or not raw.strip():
        raise MissingInput(field)
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValidationError(f"{field} must be a whole number, got {raw!r}") from exc
    if value <= 0:
        raise ValidationError(f"{field} must be greater than zero, got {value}")
    return value


def watermark_position(raw: str | None) -> str:
    position = (raw or "center").strip().lower()
    if position not in WATERMARK_POSITIONS:
        raise ValidationError(f"position must be one of {', '.join(WATERMARK_POSITIONS)}, got {raw!r}")
    return position


def video_format(raw: str | None) -> str:
    fmt = (raw or "mp4").strip().lower()
    if fmt not in VIDEO_FORMATS:
        raise ValidationError(f"format must be one of {', '.join(VIDEO_FORMATS)}, got {raw!r}")
    return fmt


def video_resolution(raw: str | None) -> str:
    try:
        parsed = parse_resolution(raw)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if parsed is None:
        return "original"
    return f"{parsed[0]}:{parsed[1]}"
