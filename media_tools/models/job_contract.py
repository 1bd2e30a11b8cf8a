from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Operation = Literal["compress", "merge", "convert", "resize", "watermark", "transcode"]
MediaKind = Literal["audio", "image", "pdf", "video"]
WatermarkPosition = Literal["top-left", "top-right", "bottom-left", "bottom-right", "center"]

WATERMARK_POSITIONS: tuple[str, ...] = ("top-left", "top-right", "bottom-left", "bottom-right", "center")
VIDEO_FORMATS: tuple[str, ...] = ("mp4", "webm", "avi", "mov", "mkv")

_OPERATIONS_BY_MEDIA: dict[str, set[str]] = {
    "audio": {"compress", "merge"},
    "image": {"convert", "resize", "watermark"},
    "pdf": {"merge"},
    "video": {"transcode"},
}


class WatermarkConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1)
    font_size: int = Field(default=18, ge=8, le=512)
    color: tuple[int, int, int] = (255, 0, 0)
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)
    position: WatermarkPosition = "center"


class ConversionSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    media: MediaKind
    operation: Operation
    quality: int = Field(default=50, ge=10, le=100)
    output_format: str | None = None
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    resolution: str = "original"
    watermark: WatermarkConfig | None = None

    @model_validator(mode="after")
    def validate_operation(self) -> "ConversionSpec":
        if self.operation not in _OPERATIONS_BY_MEDIA[self.media]:
            raise ValueError(f"Operation {self.operation!r} is not available for {self.media}")
        if self.operation == "resize" and (self.width is None or self.height is None):
            raise ValueError("Resize requires both width and height")
        if self.operation == "watermark" and self.watermark is None:
            raise ValueError("Watermark requires watermark settings")
        return self


@dataclass
class Workspace:
    path: Path
    destroyed: bool = False
    transferred: bool = False
    writers: list[asyncio.Future] = field(default_factory=list, repr=False)

    @property
    def name(self) -> str:
        return self.path.name

    def transfer(self) -> None:
        """Hand destruction over to whoever streams the artifact."""
        self.transferred = True

    def hold_until(self, writer: asyncio.Future) -> None:
        """Keep the directory alive until ``writer`` finishes touching it."""
        self.writers.append(writer)

    def pending_writers(self) -> list[asyncio.Future]:
        return [writer for writer in self.writers if not writer.done()]


@dataclass(frozen=True)
class StagedAsset:
    path: Path
    extension: str
    size_bytes: int
    ordinal: int | None = None
    display_name: str | None = None


@dataclass(frozen=True)
class Artifact:
    path: Path
    media_type: str
    download_name: str


class JobState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    STAGED = "staged"
    TRANSFORMING = "transforming"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.RECEIVED: {JobState.VALIDATED, JobState.FAILED},
    JobState.VALIDATED: {JobState.STAGED, JobState.FAILED},
    JobState.STAGED: {JobState.TRANSFORMING, JobState.FAILED},
    JobState.TRANSFORMING: {JobState.STREAMING, JobState.FAILED},
    JobState.STREAMING: {JobState.DONE, JobState.FAILED},
    JobState.DONE: set(),
    JobState.FAILED: set(),
}


@dataclass
class JobContext:
    job_id: str
    route: str
    state: JobState = JobState.RECEIVED
    history: list[JobState] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.state in {JobState.DONE, JobState.FAILED}

    def advance(self, target: JobState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal job transition {self.state.value} -> {target.value}")
        self.history.append(self.state)
        self.state = target
