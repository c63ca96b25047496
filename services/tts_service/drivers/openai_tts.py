from typing import Any, ClassVar

import openai

from shared.models import VoiceRegion, VoiceType
from shared.openai_client import classify_openai_error, create_openai_client
from shared.utils import config

from .base import SpeechDriver

# OpenAI voices carry no regional accent, so only the persona matters.
OPENAI_VOICES = {
    VoiceType.MALE_NARRATOR: "onyx",
    VoiceType.FEMALE_NARRATOR: "nova",
    VoiceType.SPORTS_COMMENTATOR: "echo",
    VoiceType.DOCUMENTARY_STYLE: "fable",
    VoiceType.ENERGETIC_HOST: "alloy",
    VoiceType.CALM_NARRATOR: "shimmer",
}


class OpenAISpeechDriver(SpeechDriver):
    """OpenAI TTS implementation using their text-to-speech API."""

    name = "openai"
    max_input_chars = 4096
    SUPPORTED_MODELS: ClassVar[list[str]] = ["tts-1", "tts-1-hd"]
    SUPPORTED_FORMATS: ClassVar[list[str]] = ["mp3", "opus", "aac", "flac", "wav"]

    def __init__(self, client: Any = None, model: str | None = None):
        self.client = client or create_openai_client(async_client=True)
        model = model or config.get("openai_tts_model", "tts-1")
        self.model = model if model in self.SUPPORTED_MODELS else "tts-1"

    def resolve_voice(self, voice_type: VoiceType, region: VoiceRegion) -> str:
        return OPENAI_VOICES.get(voice_type, "alloy")

    async def synthesize(self, text: str, voice: str, output_format: str = "mp3") -> bytes:
        if output_format not in self.SUPPORTED_FORMATS:
            output_format = "mp3"

        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=voice,
                input=text,
                response_format=output_format,
            )
        except openai.OpenAIError as e:
            raise classify_openai_error(e, stage="speech") from e

        return response.content
