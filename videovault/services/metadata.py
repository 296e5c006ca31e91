"""
Video metadata extraction.

Probes an uploaded file for duration, dimensions and frame rate. Probing
never fails from the caller's point of view: when neither ffprobe nor OpenCV
can read the file, fixed defaults are returned so processing can continue.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import Optional

import cv2

from videovault.config import settings

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 60.0
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
DEFAULT_FRAME_RATE = 30.0


@dataclass(frozen=True)
class VideoMetadata:
    """Probed media attributes of a stored video."""
    duration: float
    width: int
    height: int
    frame_rate: float
    total_frames: int
    source: str = "default"  # ffprobe, opencv or default

    @classmethod
    def defaults(cls) -> "VideoMetadata":
        return cls(
            duration=DEFAULT_DURATION,
            width=DEFAULT_WIDTH,
            height=DEFAULT_HEIGHT,
            frame_rate=DEFAULT_FRAME_RATE,
            total_frames=int(round(DEFAULT_DURATION * DEFAULT_FRAME_RATE)),
        )


def parse_frame_rate(value) -> Optional[float]:
    """
    Parse an ffprobe frame rate such as "30000/1001" or "25".

    Returns None for missing or degenerate values ("0/0").
    """
    if value in (None, ""):
        return None
    try:
        rate = float(Fraction(str(value)))
    except (ValueError, ZeroDivisionError):
        return None
    return rate if rate > 0 else None


def _positive(value, cast):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def metadata_from_probe(probe: dict) -> VideoMetadata:
    """
    Build metadata from parsed ffprobe JSON.

    Fields ffprobe did not report are filled from the defaults.
    """
    streams = probe.get("streams") or []
    video_stream = next((s for s in streams if s.get("codec_type", "video") == "video"), {})
    fmt = probe.get("format") or {}

    duration = _positive(fmt.get("duration"), float) or _positive(video_stream.get("duration"), float)
    width = _positive(video_stream.get("width"), int)
    height = _positive(video_stream.get("height"), int)
    frame_rate = parse_frame_rate(video_stream.get("r_frame_rate")) or parse_frame_rate(
        video_stream.get("avg_frame_rate")
    )

    duration = duration or DEFAULT_DURATION
    frame_rate = frame_rate or DEFAULT_FRAME_RATE

    nb_frames = video_stream.get("nb_frames")
    if isinstance(nb_frames, str) and nb_frames.isdigit() and int(nb_frames) > 0:
        total_frames = int(nb_frames)
    else:
        total_frames = int(round(duration * frame_rate))

    return VideoMetadata(
        duration=duration,
        width=width or DEFAULT_WIDTH,
        height=height or DEFAULT_HEIGHT,
        frame_rate=frame_rate,
        total_frames=total_frames,
        source="ffprobe",
    )


class MetadataExtractor:
    """Probe media files with ffprobe, falling back to OpenCV, then defaults."""

    def __init__(self, ffprobe_path: Optional[str] = None, timeout: Optional[float] = None):
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH
        self.timeout = timeout if timeout is not None else settings.PROBE_TIMEOUT_SECONDS

    async def extract(self, file_path: str) -> VideoMetadata:
        """Return metadata for file_path. Never raises."""
        try:
            probe = await self._run_ffprobe(file_path)
            if probe is not None:
                return metadata_from_probe(probe)

            metadata = await self._probe_with_opencv(file_path)
            if metadata is not None:
                return metadata
        except Exception as e:
            logger.warning(f"Metadata probing crashed for {file_path}: {e}")

        logger.warning(f"Using default metadata for {file_path} (no probe could read it)")
        return VideoMetadata.defaults()

    async def _run_ffprobe(self, file_path: str) -> Optional[dict]:
        """Run ffprobe and return its parsed JSON, or None on any failure."""
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=codec_type,width,height,r_frame_rate,avg_frame_rate,nb_frames,duration",
            "-show_entries", "format=duration",
            "-print_format", "json",
            file_path,
        ]

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError:
            logger.warning("ffprobe not found. Install FFmpeg to extract video metadata.")
            return None

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"ffprobe timed out after {self.timeout}s on {file_path}")
            return None

        if process.returncode != 0:
            logger.warning(f"ffprobe error on {file_path}: {stderr.decode(errors='replace').strip()}")
            return None

        try:
            probe = json.loads(stdout.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Error parsing ffprobe output for {file_path}: {e}")
            return None

        if not probe.get("streams"):
            logger.warning(f"ffprobe found no video stream in {file_path}")
            return None
        return probe

    async def _probe_with_opencv(self, file_path: str) -> Optional[VideoMetadata]:
        if not os.path.exists(file_path):
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _read_capture_properties, file_path)


def _read_capture_properties(file_path: str) -> Optional[VideoMetadata]:
    """Read frame count, fps and size with OpenCV (blocking)."""
    cap = cv2.VideoCapture(file_path)
    try:
        if not cap.isOpened():
            return None

        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    finally:
        cap.release()

    if width <= 0 or height <= 0:
        return None

    metadata = VideoMetadata.defaults()
    frame_rate = fps if fps > 0 else metadata.frame_rate
    duration = total_frames / frame_rate if total_frames > 0 else metadata.duration
    return replace(
        metadata,
        duration=duration,
        width=width,
        height=height,
        frame_rate=frame_rate,
        total_frames=total_frames if total_frames > 0 else int(round(duration * frame_rate)),
        source="opencv",
    )
