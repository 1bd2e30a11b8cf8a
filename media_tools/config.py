import os
import tempfile
from dataclasses import dataclass, field, fields
from functools import lru_cache
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    max_file_size_bytes: int = 52_428_800
    temp_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "media-tools")
    ffmpeg_binary: str = ""
    transform_timeout_seconds: float = 300.0
    max_concurrent_transforms: int = 4
    queue_timeout_seconds: float = 30.0
    stream_chunk_size: int = 65_536
    orphan_max_age_seconds: float = 3600.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "Settings":
        values = _load_env({item.name for item in fields(cls)}, env_file=env_file)
        if "temp_root" in values:
            values["temp_root"] = Path(str(values["temp_root"]))
        for name in ("ffmpeg_binary", "host", "environment", "log_level"):
            if name in values:
                values[name] = str(values[name])
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def _load_env(field_names: set[str], env_file: str) -> dict[str, object]:
    values: dict[str, object] = {}

    env_path = Path(env_file)
    if env_path.exists():
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, raw_value = line.split("=", 1)
            name = _to_field_name(key.strip())
            if name in field_names:
                values[name] = _coerce_value(raw_value.strip())

    for key, raw_value in os.environ.items():
        name = _to_field_name(key)
        if name in field_names:
            values[name] = _coerce_value(raw_value)

    return values


def _to_field_name(env_key: str) -> str:
    return env_key.lower()


def _coerce_value(raw_value: str) -> object:
    cleaned = raw_value.strip().strip('"').strip("'")

    lowered = cleaned.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"

    if cleaned.lstrip("+-").isdigit():
        return int(cleaned)

    try:
        return float(cleaned)
    except ValueError:
        return cleaned
