import hashlib
import logging
import re
import uuid
from pathlib import Path
from typing import Any

from shared.config import ServiceConfig, config

__all__ = [
    "ServiceConfig",
    "config",
    "chunk_text",
    "ensure_directory",
    "format_time_for_subtitle",
    "generate_hash",
    "generate_job_id",
    "generate_srt_content",
    "sanitize_filename",
    "setup_logging",
    "split_into_sentence_chunks",
]

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def setup_logging(service_name: str, log_level: str = "INFO") -> logging.Logger:
    """Setup logging configuration for a service"""
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, log_level.upper()))

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(f"%(asctime)s - {service_name} - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def generate_hash(text: str) -> str:
    """Generate a hash for caching purposes"""
    return hashlib.md5(text.encode()).hexdigest()


def generate_job_id() -> str:
    """Opaque identifier shared by a queue entry and its persisted record."""
    return f"job_{uuid.uuid4().hex}"


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe storage"""
    invalid_chars = '<>:"/\\|?* '
    for char in invalid_chars:
        filename = filename.replace(char, "_")
    return filename


def ensure_directory(path: str) -> None:
    """Ensure directory exists, create if not"""
    Path(path).mkdir(parents=True, exist_ok=True)


def format_time_for_subtitle(seconds: float) -> str:
    """Format time in seconds to SRT time format (HH:MM:SS,mmm)"""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    milliseconds = int(round((seconds % 1) * 1000)) % 1000

    return f"{hours:02d}:{minutes:02d}:{secs:02d},{milliseconds:03d}"


def generate_srt_content(subtitles: list[dict[str, Any]]) -> str:
    """Generate SRT subtitle content"""
    srt_content = []

    for i, subtitle in enumerate(subtitles, 1):
        start_time = format_time_for_subtitle(subtitle["start_time"])
        end_time = format_time_for_subtitle(subtitle["end_time"])
        text = subtitle["text"]

        srt_content.append(f"{i}")
        srt_content.append(f"{start_time} --> {end_time}")
        srt_content.append(text)
        srt_content.append("")  # Empty line between subtitles

    return "\n".join(srt_content)


def chunk_text(text: str, max_length: int = 500) -> list[str]:
    """Split text into chunks for processing, preserving all characters."""
    if len(text) <= max_length:
        return [text]
    chunks = []
    start = 0
    while start < len(text):
        end = min(start + max_length, len(text))
        chunks.append(text[start:end])
        start = end
    return chunks


def split_into_sentence_chunks(text: str, max_length: int) -> list[str]:
    """
    Split text into chunks no longer than ``max_length``, breaking between sentences.

    Sentences are packed greedily in their original order. A sentence longer than the
    ceiling is broken on word boundaries, and a single word longer than the ceiling is
    cut with ``chunk_text``.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")

    text = text.strip()
    if not text:
        return []
    if len(text) <= max_length:
        return [text]

    pieces: list[str] = []
    for sentence in SENTENCE_BOUNDARY.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        if len(sentence) <= max_length:
            pieces.append(sentence)
            continue
        for word in sentence.split():
            pieces.extend(chunk_text(word, max_length))

    chunks: list[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current} {piece}" if current else piece
        if len(candidate) <= max_length:
            current = candidate
        else:
            chunks.append(current)
            current = piece
    if current:
        chunks.append(current)
    return chunks
