"""Slideshow composition with the ffmpeg command line."""

from __future__ import annotations

import asyncio
import subprocess
import tempfile
from pathlib import Path

from services.media.subtitles import cues_to_srt
from shared.errors import ErrorKind, GenerationError
from shared.models import ComposedVideo, ComposeRequest
from shared.utils import config, setup_logging

from .base import VideoComposer

logger = setup_logging("ffmpeg-composer")


class FFmpegComposer(VideoComposer):
    """Shows each frame for an equal share of the narration, optionally with burnt-in subtitles."""

    name = "ffmpeg"

    def __init__(self, binary: str | None = None, fps: int = 30, timeout: float = 600.0) -> None:
        self.binary = binary or config.get("ffmpeg_binary", "ffmpeg")
        self.fps = fps
        self.timeout = timeout

    async def compose(self, request: ComposeRequest) -> ComposedVideo:
        if not request.images:
            raise GenerationError("No frames to compose", ErrorKind.SYSTEM, stage="video", code="COMPOSE_ERROR")
        return await asyncio.to_thread(self._compose_sync, request)

    def _compose_sync(self, request: ComposeRequest) -> ComposedVideo:
        with tempfile.TemporaryDirectory(prefix="reel_") as tmp:
            workdir = Path(tmp)
            audio_path = workdir / "narration.audio"
            audio_path.write_bytes(request.audio)

            frame_seconds = request.duration_seconds / len(request.images)
            concat_lines = []
            for index, frame in enumerate(request.images):
                frame_path = workdir / f"frame_{index:03d}.jpg"
                frame_path.write_bytes(frame)
                concat_lines.append(f"file '{frame_path.name}'")
                concat_lines.append(f"duration {frame_seconds:.3f}")
            # The concat demuxer ignores the last duration unless the file is repeated
            concat_lines.append(f"file 'frame_{len(request.images) - 1:03d}.jpg'")
            concat_path = workdir / "frames.txt"
            concat_path.write_text("\n".join(concat_lines) + "\n", encoding="utf-8")

            video_filter = (
                f"scale={request.width}:{request.height}:force_original_aspect_ratio=decrease,"
                f"pad={request.width}:{request.height}:(ow-iw)/2:(oh-ih)/2,fps={self.fps},format=yuv420p"
            )
            if request.subtitles:
                (workdir / "captions.srt").write_text(cues_to_srt(request.subtitles), encoding="utf-8")
                video_filter += ",subtitles=captions.srt:force_style='FontSize=18,Outline=2'"

            output_path = workdir / "reel.mp4"
            command = [
                self.binary,
                "-y",
                "-loglevel", "error",
                "-f", "concat",
                "-safe", "0",
                "-i", concat_path.name,
                "-i", audio_path.name,
                "-vf", video_filter,
                "-c:v", "libx264",
                "-b:v", request.bitrate,
                "-c:a", "aac",
                "-b:a", "128k",
                "-t", f"{request.duration_seconds:.3f}",
                "-movflags", "+faststart",
                "-shortest",
                output_path.name,
            ]

            try:
                result = subprocess.run(
                    command,
                    cwd=workdir,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except FileNotFoundError as e:
                raise GenerationError(
                    f"ffmpeg binary not found: {self.binary}",
                    ErrorKind.SYSTEM,
                    stage="video",
                    code="COMPOSE_ERROR",
                ) from e
            except subprocess.TimeoutExpired as e:
                raise GenerationError(
                    f"ffmpeg timed out after {self.timeout:.0f}s",
                    ErrorKind.TEMPORARY,
                    stage="video",
                    code="COMPOSE_TIMEOUT",
                ) from e

            if result.returncode != 0:
                logger.error(f"ffmpeg failed ({result.returncode}): {result.stderr.strip()[-2000:]}")
                raise GenerationError(
                    "Video composition failed",
                    ErrorKind.SYSTEM,
                    stage="video",
                    code="COMPOSE_ERROR",
                    context={"returncode": result.returncode},
                )

            video = output_path.read_bytes()

        return ComposedVideo(
            video=video,
            metadata={
                "width": request.width,
                "height": request.height,
                "duration": request.duration_seconds,
                "bitrate": request.bitrate,
                "frames": len(request.images),
                "subtitles": bool(request.subtitles),
                "size": len(video),
            },
        )
