from __future__ import annotations

import re
import shutil
from pathlib import Path

_EXTENSION_PATTERN = re.compile(r"^[a-z0-9]{1,10}$")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_tree(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


def sanitize_extension(raw: str | None, fallback: str) -> str:
    """Return ``.ext`` built from ``raw`` when it is a plain short token, else ``fallback``."""
    candidate = (raw or "").strip().lower().lstrip(".")
    if _EXTENSION_PATTERN.match(candidate):
        return f".{candidate}"
    return fallback


def extension_of(filename: str | None) -> str:
    if not filename:
        return ""
    return Path(filename.replace("\\", "/")).suffix


def display_stem(filename: str | None, fallback: str) -> str:
    if not filename:
        return fallback
    name = Path(filename.replace("\\", "/")).name
    cleaned = "".join(ch for ch in name if ch.isprintable() and ch not in {'"', ";"}).strip()
    return cleaned or fallback
