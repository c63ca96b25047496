"""Offline speech driver producing a quiet tone sized to the narration length."""

import io
import math
import struct
import wave

from shared.models import VoiceRegion, VoiceType

from .base import SpeechDriver

SAMPLE_RATE = 16000
WORDS_PER_SECOND = 2.5


class ToneSpeechDriver(SpeechDriver):
    """Placeholder narration for local development; always emits WAV."""

    name = "tone"
    max_input_chars = 3000
    content_type = "audio/wav"

    def __init__(self, frequency: float = 220.0, amplitude: float = 0.1):
        self.frequency = frequency
        self.amplitude = amplitude

    def resolve_voice(self, voice_type: VoiceType, region: VoiceRegion) -> str:
        return f"tone-{voice_type.value.lower()}-{region.value.lower()}"

    async def synthesize(self, text: str, voice: str, output_format: str = "wav") -> bytes:
        seconds = max(1.0, len(text.split()) / WORDS_PER_SECOND)
        frame_count = int(seconds * SAMPLE_RATE)
        peak = int(32767 * self.amplitude)
        frames = b"".join(
            struct.pack("<h", int(peak * math.sin(2 * math.pi * self.frequency * i / SAMPLE_RATE)))
            for i in range(frame_count)
        )

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)
            wav.setframerate(SAMPLE_RATE)
            wav.writeframes(frames)
        return buffer.getvalue()
