"""Media transcoding collaborator backed by ffmpeg-python."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Protocol

import ffmpeg  # type: ignore[import-untyped]

from src.errors import CollaboratorError
from src.media.models import TimeRange

logger = logging.getLogger(__name__)

AUDIO_SAMPLE_RATE = 16000


class TranscoderProvider(Protocol):
    def extract_audio(self, source_path: str) -> str: ...

    def cut_by_time_ranges(
        self, source_path: str, ranges: list[TimeRange], output_dir: str
    ) -> list[str]: ...


def _ffmpeg_message(exc: ffmpeg.Error) -> str:
    stderr = exc.stderr.decode("utf-8", errors="replace").strip() if exc.stderr else ""
    return stderr.splitlines()[-1] if stderr else str(exc)


class FfmpegTranscoder:
    """Extracts mono WAV audio and cuts MP4 clips with the ffmpeg binary."""

    name = "ffmpeg"

    def __init__(self, audio_dir: str, sample_rate: int = AUDIO_SAMPLE_RATE) -> None:
        self.audio_dir = Path(audio_dir)
        self.sample_rate = sample_rate

    def extract_audio(self, source_path: str) -> str:
        """Write a mono WAV copy of *source_path*'s audio track and return its path."""
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        output = self.audio_dir / f"{Path(source_path).stem}-{uuid.uuid4().hex[:8]}.wav"
        logger.info("Extracting audio from %s to %s", source_path, output)
        try:
            (
                ffmpeg.input(source_path)
                .output(str(output), ac=1, ar=self.sample_rate, format="wav")
                .overwrite_output()
                .run(quiet=True)
            )
        except ffmpeg.Error as exc:
            raise CollaboratorError("ffmpeg", f"audio extraction failed: {_ffmpeg_message(exc)}") from exc
        return str(output)

    def cut_by_time_ranges(
        self, source_path: str, ranges: list[TimeRange], output_dir: str
    ) -> list[str]:
        """Cut one MP4 per range, in order. Ranges with ``end <= start`` are skipped."""
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        paths: list[str] = []
        for index, time_range in enumerate(ranges):
            duration = time_range.end - time_range.start
            if duration <= 0:
                logger.warning(
                    "Skipping empty range %.2f-%.2f", time_range.start, time_range.end
                )
                continue

            output = out_dir / f"clip-{index + 1:02d}-{uuid.uuid4().hex[:8]}.mp4"
            try:
                (
                    ffmpeg.input(source_path, ss=time_range.start, t=duration)
                    .output(str(output), vcodec="libx264", acodec="aac", movflags="+faststart")
                    .overwrite_output()
                    .run(quiet=True)
                )
            except ffmpeg.Error as exc:
                raise CollaboratorError("ffmpeg", f"cut failed: {_ffmpeg_message(exc)}") from exc
            paths.append(str(output))

        logger.info("Cut %d clips from %s", len(paths), source_path)
        return paths
