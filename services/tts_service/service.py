"""Narration synthesis: text preprocessing, chunking and ordered audio assembly."""

from __future__ import annotations

import io
import re
import wave

from shared.models import SpeechAudio, VoiceRegion, VoiceType
from shared.utils import config, setup_logging, split_into_sentence_chunks

from .drivers.base import SpeechDriver

logger = setup_logging("tts-service")

ABBREVIATIONS = {
    "NBA": "N B A",
    "NFL": "N F L",
    "MLB": "M L B",
    "NHL": "N H L",
    "FIFA": "F I F A",
    "UFC": "U F C",
    "WWE": "W W E",
    "ESPN": "E S P N",
    "MVP": "M V P",
    "CEO": "C E O",
    "USA": "U S A",
    "UK": "U K",
    "vs": "versus",
}

SYMBOLS = {"&": " and ", "%": " percent", "$": " dollars ", "#": " number "}

DELIVERY_MARKERS = re.compile(r"\[(?:PAUSE(?:_SHORT|_LONG)?|/?FAST|/?SLOW)\]")
EMPHASIS = re.compile(r"\*([^*]+)\*")
SCORE = re.compile(r"(\d+)-(\d+)")


def strip_delivery_markers(text: str) -> str:
    """Remove pause, pace and emphasis markup, keeping the spoken words."""
    stripped = EMPHASIS.sub(r"\1", DELIVERY_MARKERS.sub(" ", text))
    return re.sub(r"\s+", " ", stripped).strip()


def preprocess_for_speech(text: str) -> str:
    """Normalise a script for plain-text synthesis engines."""
    processed = strip_delivery_markers(text)
    for abbreviation, spoken in ABBREVIATIONS.items():
        processed = re.sub(rf"\b{abbreviation}\b", spoken, processed, flags=re.IGNORECASE)
    for symbol, spoken in SYMBOLS.items():
        processed = processed.replace(symbol, spoken)
    processed = SCORE.sub(r"\1 to \2", processed)
    return re.sub(r"\s+", " ", processed).strip()


def concatenate_audio(chunks: list[bytes], output_format: str) -> bytes:
    """Join chunk audio in order; WAV chunks are re-muxed under a single header."""
    if output_format != "wav" or len(chunks) < 2:
        return b"".join(chunks)

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as merged:
        for index, chunk in enumerate(chunks):
            with wave.open(io.BytesIO(chunk), "rb") as part:
                if index == 0:
                    merged.setparams(part.getparams())
                merged.writeframes(part.readframes(part.getnframes()))
    return buffer.getvalue()


class SpeechService:
    """Synthesize a full script through a driver that accepts bounded input."""

    def __init__(self, driver: SpeechDriver, max_chunk_chars: int | None = None) -> None:
        self.driver = driver
        configured = int(config.get_pipeline_value("speech.max_chunk_chars", 3000))
        self.max_chunk_chars = min(max_chunk_chars or configured, driver.max_input_chars)

    @property
    def output_format(self) -> str:
        if self.driver.content_type == "audio/wav":
            return "wav"
        return str(config.get_pipeline_value("speech.output_format", "mp3"))

    def split(self, text: str) -> list[str]:
        return split_into_sentence_chunks(text, self.max_chunk_chars)

    async def synthesize_script(
        self,
        script: str,
        voice_type: VoiceType,
        region: VoiceRegion = VoiceRegion.US,
    ) -> SpeechAudio:
        text = preprocess_for_speech(script)
        if not text:
            raise ValueError("Script has no speakable text")

        voice = self.driver.resolve_voice(voice_type, region)
        output_format = self.output_format
        chunks = self.split(text)
        logger.info(f"Synthesizing {len(text)} chars in {len(chunks)} chunk(s) with {self.driver.name}:{voice}")

        # One chunk at a time; parts are joined in text order
        audio_parts: list[bytes] = []
        for chunk in chunks:
            audio_parts.append(await self.driver.synthesize(chunk, voice, output_format))

        return SpeechAudio(
            audio=concatenate_audio(audio_parts, output_format),
            content_type=self.driver.content_type,
            characters=len(text),
            chunks=len(chunks),
            voice=voice,
        )
