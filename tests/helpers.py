from __future__ import annotations

import io
import stat
import sys
from pathlib import Path

import pymupdf
import pytest
from PIL import Image

# Copies the file named after ``-i`` to the last argument, like a no-op transcode.
FAKE_FFMPEG = """#!/bin/sh
src=""
prev=""
for arg in "$@"; do
  if [ "$prev" = "-i" ]; then src="$arg"; fi
  prev="$arg"
  out="$arg"
done
cat "$src" > "$out"
"""

FAILING_FFMPEG = """#!/bin/sh
echo "Invalid data found when processing input $PWD/input.bin" >&2
exit 1
"""

SLOW_FFMPEG = """#!/bin/sh
exec sleep 30
"""

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="fake ffmpeg is a POSIX shell script")


def write_script(directory: Path, name: str, body: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def residual_entries(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return list(root.iterdir())


def png_bytes(width: int = 64, height: int = 48, color=(30, 120, 200, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def pdf_bytes(*page_sizes: tuple[int, int]) -> bytes:
    document = pymupdf.open()
    try:
        for width, height in page_sizes:
            document.new_page(width=width, height=height)
        return document.tobytes()
    finally:
        document.close()
