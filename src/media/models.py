"""Data models for uploaded media, transcripts and generated clips."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from src.timecodes import timecode_to_seconds


@dataclass(frozen=True)
class MediaFile:
    """An uploaded media file kept by the file storage collaborator."""

    id: str
    original_name: str
    stored_path: str
    mime_type: str
    size_bytes: int
    uploaded_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaFile:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class RawSegment:
    """One transcript segment as produced by the speech-to-text collaborator."""

    id: str
    start_time: str  # HH:MM:SS
    end_time: str  # HH:MM:SS
    start_seconds: float
    end_seconds: float
    duration_seconds: float
    text: str
    word_count: int = 0
    avg_confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawSegment:
        """Build a segment from a stored row.

        Rows that carry only ``HH:MM:SS`` timecodes get their numeric
        seconds and duration derived from them.
        """
        values = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        if "start_seconds" not in values:
            values["start_seconds"] = timecode_to_seconds(values["start_time"])
        if "end_seconds" not in values:
            values["end_seconds"] = timecode_to_seconds(values["end_time"])
        if "duration_seconds" not in values:
            values["duration_seconds"] = values["end_seconds"] - values["start_seconds"]
        return cls(**values)


@dataclass(frozen=True)
class Transcript:
    """The persisted result of the transcription stage."""

    id: str
    pipeline_id: str
    file_id: str
    provider: str
    language: str
    segments: list[RawSegment]
    created_at: str
    total_words: int = 0
    full_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["segments"] = [s.to_dict() for s in self.segments]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transcript:
        values = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        values["segments"] = [RawSegment.from_dict(s) for s in data.get("segments") or []]
        return cls(**values)


@dataclass(frozen=True)
class TimeRange:
    """A cut request for the transcoder, in seconds."""

    start: float
    end: float


@dataclass(frozen=True)
class Clip:
    """A cut media file for one ranked segment of an analysis run."""

    id: str
    analysis_run_id: str
    pipeline_id: str
    file_id: str
    segment_id: str
    start_time: str
    end_time: str
    duration_seconds: float
    title: str
    summary: str
    score: float
    rank: int
    clip_path: str
    size_bytes: int
    created_at: str
    mime_type: str = field(default="video/mp4")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Clip:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})
