from abc import ABC, abstractmethod
from typing import ClassVar

from shared.models import VoiceRegion, VoiceType


class SpeechDriver(ABC):
    """Abstract base class for speech synthesis drivers."""

    name: ClassVar[str] = "base"
    # Longest text accepted by a single synthesize() call
    max_input_chars: ClassVar[int] = 3000
    content_type: ClassVar[str] = "audio/mpeg"

    @abstractmethod
    async def synthesize(self, text: str, voice: str, output_format: str = "mp3") -> bytes:
        """Synthesize one chunk of text and return the encoded audio."""
        pass

    @abstractmethod
    def resolve_voice(self, voice_type: VoiceType, region: VoiceRegion) -> str:
        """Provider voice id for a narrator persona and accent."""
        pass
