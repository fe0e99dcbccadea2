"""
Media preparation before upload.

QuickTime (MOV) videos are transcoded to web-friendly MP4 with ffmpeg. The
conversion is bounded by a hard timeout; on timeout, a missing ffmpeg binary
or any ffmpeg failure the original input is returned unchanged.
"""

import asyncio
import shutil
import subprocess
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..config import Config, get_config
from ..logging_config import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int], None]

FFMPEG_MP4_ARGS = [
    "-c:v", "libx264",
    "-c:a", "aac",
    "-preset", "fast",
    "-crf", "28",
    "-movflags", "+faststart",
    "-pix_fmt", "yuv420p",
    "-max_muxing_queue_size", "9999",
    "-t", "300",
]


@dataclass
class UploadSource:
    """A file waiting to be uploaded."""

    filename: str
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_video(self) -> bool:
        return self.content_type.lower().startswith("video/") or self.filename.lower().endswith(".mov")


class MediaPreparer:
    """Transcodes MOV uploads to MP4, falling back to the original on any failure."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 300.0):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Config | None = None) -> "MediaPreparer":
        config = config or get_config()
        return cls(
            ffmpeg_path=config.get("FFMPEG_PATH", "ffmpeg"),
            timeout=config.get("VIDEO_CONVERSION_TIMEOUT", 300.0, float),
        )

    @staticmethod
    def should_convert(source: UploadSource) -> bool:
        content_type = source.content_type.lower()
        return source.filename.lower().endswith(".mov") or "quicktime" in content_type

    def is_available(self) -> bool:
        return shutil.which(self.ffmpeg_path) is not None

    async def prepare(self, source: UploadSource, on_progress: ProgressCallback | None = None) -> UploadSource:
        """
        Return the file to upload: a converted MP4 or the original input.

        Args:
            source: File selected by the user
            on_progress: Called with a percentage at each stage

        Returns:
            UploadSource ready for upload
        """
        if not self.should_convert(source):
            return source

        if not self.is_available():
            logger.warning("ffmpeg_unavailable", filename=source.filename, ffmpeg_path=self.ffmpeg_path)
            return source

        if on_progress:
            on_progress(10)

        try:
            converted = await asyncio.to_thread(self._convert, source, on_progress)
        except subprocess.TimeoutExpired:
            logger.warning("video_conversion_timeout", filename=source.filename, timeout=self.timeout)
            return source
        except (subprocess.SubprocessError, OSError) as e:
            logger.warning("video_conversion_failed", filename=source.filename, error=str(e))
            return source

        if on_progress:
            on_progress(100)

        logger.info(
            "video_converted",
            filename=source.filename,
            original_size=source.size,
            converted_size=converted.size,
        )
        return converted

    def _convert(self, source: UploadSource, on_progress: ProgressCallback | None) -> UploadSource:
        with tempfile.TemporaryDirectory(prefix="design-vault-") as workdir:
            input_path = Path(workdir) / "input.mov"
            output_path = Path(workdir) / "output.mp4"
            input_path.write_bytes(source.data)
            if on_progress:
                on_progress(20)

            # subprocess.run kills the child when the timeout expires
            subprocess.run(
                [self.ffmpeg_path, "-y", "-i", str(input_path), *FFMPEG_MP4_ARGS, str(output_path)],
                capture_output=True,
                check=True,
                timeout=self.timeout,
            )
            if on_progress:
                on_progress(90)

            data = output_path.read_bytes()

        filename = str(Path(source.filename).with_suffix(".mp4"))
        return UploadSource(filename=filename, data=data, content_type="video/mp4")
