"""FFmpeg transcoding utilities.

Runs one ffmpeg process per target resolution and exposes its progress as an
async stream of events that ends in a single ``EncodeCompleted``.
"""

import asyncio
import contextlib
import json
import logging
import os
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Protocol, Union

from app.modules.transcoding.schemas import TargetProfile

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 40


class EncodeError(Exception):
    """Encoding of one target failed.

    ``reason`` is a short machine-readable code, ``message`` carries the
    underlying detail (OS error text or the encoder's stderr tail).
    """

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message
        super().__init__(f"{reason}: {message}" if message else reason)


@dataclass
class ProgressEvent:
    """Completion percentage reported by the encoder for one target."""
    label: str
    percent: float


@dataclass
class EncodeCompleted:
    """Terminal event of a successful encode."""
    label: str
    output_path: str
    file_size: int
    duration: float


EncodeEvent = Union[ProgressEvent, EncodeCompleted]


class Encoder(Protocol):
    """Anything that can encode one source into one target profile."""

    def encode(
        self,
        source_path: str,
        profile: TargetProfile,
        output_path: str,
    ) -> AsyncIterator[EncodeEvent]:
        ...


def parse_progress_line(line: str, duration: float) -> Optional[float]:
    """Turn one line of ffmpeg ``-progress`` output into a percentage.

    Args:
        line: A ``key=value`` line
        duration: Source duration in seconds (0 when unknown)

    Returns:
        Percentage, or None when the line carries no progress information
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    if key == "progress" and value == "end":
        return 100.0
    # out_time_ms is microseconds as well, a long-standing ffmpeg quirk
    if key not in ("out_time_us", "out_time_ms") or duration <= 0:
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    return round(micros / (duration * 1_000_000) * 100, 2)


async def _read_tail(stream: asyncio.StreamReader, max_lines: int = STDERR_TAIL_LINES) -> str:
    tail: deque[str] = deque(maxlen=max_lines)
    async for raw in stream:
        tail.append(raw.decode("utf-8", errors="ignore").rstrip())
    return "\n".join(line for line in tail if line)


class FFmpegTranscoder:
    """FFmpeg-based video transcoder producing H.264/AAC MP4 files."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        preset: str = "veryfast",
        crf: int = 23,
        audio_bitrate: str = "128k",
    ):
        """Initialize transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            preset: x264 preset
            crf: x264 constant rate factor
            audio_bitrate: AAC bitrate passed to ``-b:a``
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.preset = preset
        self.crf = crf
        self.audio_bitrate = audio_bitrate

    async def probe_duration(self, input_path: str) -> float:
        """Get the duration of a media file in seconds using ffprobe.

        Returns 0.0 when the duration cannot be determined; the encode still
        runs, it just reports no intermediate progress.
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            input_path,
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("ffprobe unavailable: %s", e)
            return 0.0

        stdout, _ = await process.communicate()
        if process.returncode != 0:
            return 0.0
        try:
            return float(json.loads(stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError):
            return 0.0

    def build_transcode_command(
        self,
        input_path: str,
        profile: TargetProfile,
        output_path: str,
    ) -> list[str]:
        """Build FFmpeg command for one target.

        The picture is scaled to fit inside the target size and padded to it,
        so every output has exactly the requested dimensions.
        """
        width, height = profile.width, profile.height
        return [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-hide_banner",
            "-nostats",
            "-loglevel", "error",
            "-progress", "pipe:1",
            "-i", input_path,
            # Video settings
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-vf",
            f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1",
            "-pix_fmt", "yuv420p",
            # Audio settings
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            # Output format
            "-movflags", "+faststart",
            "-f", "mp4",
            output_path,
        ]

    def _check_inputs(self, source_path: str, profile: TargetProfile, output_path: str) -> None:
        if profile.width <= 0 or profile.height <= 0:
            raise EncodeError("invalid_resolution", profile.size)
        if not os.path.isfile(source_path) or not os.access(source_path, os.R_OK):
            raise EncodeError("source_unreadable", source_path)
        try:
            os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        except OSError as e:
            raise EncodeError("output_unwritable", str(e)) from e

    async def encode(
        self,
        source_path: str,
        profile: TargetProfile,
        output_path: str,
    ) -> AsyncIterator[EncodeEvent]:
        """Transcode ``source_path`` into ``output_path`` for one profile.

        Yields ``ProgressEvent`` values in the order ffmpeg reports them and
        finally one ``EncodeCompleted``.

        Raises:
            EncodeError: On bad input, a missing encoder or a non-zero exit
        """
        self._check_inputs(source_path, profile, output_path)
        duration = await self.probe_duration(source_path)
        cmd = self.build_transcode_command(source_path, profile, output_path)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodeError("encoder_unavailable", str(e)) from e

        logger.debug("Started encoder pid=%s for %s", process.pid, profile.label)
        # stderr is drained alongside stdout so a full pipe never stalls ffmpeg
        stderr_task = asyncio.create_task(_read_tail(process.stderr))
        try:
            async for raw in process.stdout:
                percent = parse_progress_line(raw.decode("utf-8", errors="ignore"), duration)
                if percent is not None:
                    yield ProgressEvent(label=profile.label, percent=percent)
            returncode = await process.wait()
            stderr_tail = await stderr_task
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stderr_task

        if returncode != 0:
            raise EncodeError(
                "encoder_failed",
                stderr_tail or f"ffmpeg exited with status {returncode}",
            )
        try:
            file_size = os.path.getsize(output_path)
        except OSError as e:
            raise EncodeError("output_missing", str(e)) from e

        yield EncodeCompleted(
            label=profile.label,
            output_path=output_path,
            file_size=file_size,
            duration=duration,
        )
