"""Video composition driver implementations"""

from shared.utils import config

from .base import VideoComposer
from .ffmpeg import FFmpegComposer

COMPOSER_DRIVERS: dict[str, type[VideoComposer]] = {FFmpegComposer.name: FFmpegComposer}


def create_video_composer(name: str | None = None) -> VideoComposer:
    driver_name = name or config.get("composer_driver", "ffmpeg")
    driver_cls = COMPOSER_DRIVERS.get(driver_name)
    if driver_cls is None:
        raise ValueError(f"Composer driver '{driver_name}' is not configured")
    return driver_cls()


__all__ = ["COMPOSER_DRIVERS", "FFmpegComposer", "VideoComposer", "create_video_composer"]
