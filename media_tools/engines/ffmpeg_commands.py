"""Argument-vector builders for the ffmpeg-backed operations.

Everything here is pure: paths go in, ``list[str]`` comes out. No command is
ever joined into a shell string.
"""

from __future__ import annotations

import re
from pathlib import Path

MIN_BITRATE_KBPS = 32
MAX_BITRATE_KBPS = 320
MIN_QUALITY = 10
MAX_QUALITY = 100

VIDEO_MEDIA_TYPES = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "mkv": "video/x-matroska",
}

_RESOLUTION_PATTERN = re.compile(r"^\s*(-?\d+)\s*[x:X]\s*(-?\d+)\s*$")


def clamp_quality(quality: int) -> int:
    return max(MIN_QUALITY, min(MAX_QUALITY, quality))


def bitrate_for_quality(quality: int) -> int:
    """Linear map of quality 10..100 onto 32..320 kbps, rounded half up."""
    fraction = clamp_quality(quality) / 100
    exact = MIN_BITRATE_KBPS + fraction * (MAX_BITRATE_KBPS - MIN_BITRATE_KBPS)
    return int(exact + 0.5)


def video_codec_args(output_format: str) -> list[str]:
    if output_format == "mp4":
        return ["-c:v", "libx264", "-preset", "fast", "-crf", "28"]
    if output_format == "webm":
        return ["-c:v", "libvpx", "-b:v", "1M"]
    return ["-c:v", "mjpeg"]


def parse_resolution(raw: str | None) -> tuple[int, int] | None:
    """Parse ``WxH``/``W:H``. ``None`` means keep the source size.

    ``-1`` and ``-2`` are accepted on one side to let ffmpeg keep the aspect ratio.
    """
    if raw is None or not raw.strip() or raw.strip().lower() == "original":
        return None
    match = _RESOLUTION_PATTERN.match(raw)
    if match is None:
        raise ValueError(f"Resolution must look like 1280x720, got {raw!r}")
    width, height = int(match.group(1)), int(match.group(2))
    for value in (width, height):
        if value == 0 or value < -2:
            raise ValueError(f"Resolution sides must be positive, got {raw!r}")
    if width < 0 and height < 0:
        raise ValueError(f"Only one resolution side may be derived, got {raw!r}")
    return width, height


def escape_concat_path(path: Path) -> str:
    return str(path).replace("'", "'\\''")


def build_concat_list(inputs: list[Path]) -> str:
    return "\n".join(f"file '{escape_concat_path(path.resolve())}'" for path in inputs) + "\n"


def _base(binary: str) -> list[str]:
    return [binary, "-hide_banner", "-nostdin", "-y"]


def compress_audio_command(binary: str, source: Path, output: Path, quality: int) -> list[str]:
    return [
        *_base(binary),
        "-i", str(source),
        "-vn",
        "-c:a", "libmp3lame",
        "-b:a", f"{bitrate_for_quality(quality)}k",
        str(output),
    ]


def merge_audio_command(binary: str, concat_list: Path, output: Path) -> list[str]:
    return [
        *_base(binary),
        "-f", "concat",
        "-safe", "0",
        "-i", str(concat_list),
        "-vn",
        "-c:a", "libmp3lame",
        "-q:a", "2",
        str(output),
    ]


def transcode_video_command(
    binary: str,
    source: Path,
    output: Path,
    output_format: str,
    resolution: tuple[int, int] | None,
) -> list[str]:
    command = [*_base(binary), "-i", str(source)]
    if resolution is not None:
        command += ["-vf", f"scale={resolution[0]}:{resolution[1]}"]
    command += video_codec_args(output_format)
    command.append(str(output))
    return command
