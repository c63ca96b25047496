from typing import ClassVar
from xml.sax.saxutils import escape

import aiohttp

from shared.errors import classify_status
from shared.http_client import AsyncHTTPClient
from shared.models import VoiceRegion, VoiceType

from .base import SpeechDriver

AZURE_VOICES = {
    VoiceType.MALE_NARRATOR: {
        VoiceRegion.US: "en-US-GuyNeural",
        VoiceRegion.UK: "en-GB-RyanNeural",
        VoiceRegion.AU: "en-AU-WilliamNeural",
    },
    VoiceType.FEMALE_NARRATOR: {
        VoiceRegion.US: "en-US-JennyNeural",
        VoiceRegion.UK: "en-GB-SoniaNeural",
        VoiceRegion.AU: "en-AU-NatashaNeural",
    },
    VoiceType.SPORTS_COMMENTATOR: {
        VoiceRegion.US: "en-US-DavisNeural",
        VoiceRegion.UK: "en-GB-ThomasNeural",
        VoiceRegion.AU: "en-AU-DuncanNeural",
    },
    VoiceType.DOCUMENTARY_STYLE: {
        VoiceRegion.US: "en-US-ChristopherNeural",
        VoiceRegion.UK: "en-GB-AlfieNeural",
        VoiceRegion.AU: "en-AU-KenNeural",
    },
    VoiceType.ENERGETIC_HOST: {
        VoiceRegion.US: "en-US-JasonNeural",
        VoiceRegion.UK: "en-GB-ElliotNeural",
        VoiceRegion.AU: "en-AU-TimNeural",
    },
    VoiceType.CALM_NARRATOR: {
        VoiceRegion.US: "en-US-BrandonNeural",
        VoiceRegion.UK: "en-GB-OliverNeural",
        VoiceRegion.AU: "en-AU-NeilNeural",
    },
}


class AzureSpeechDriver(SpeechDriver):
    """Azure Cognitive Services TTS over the REST endpoint."""

    name = "azure"
    max_input_chars = 3000
    OUTPUT_FORMATS: ClassVar[dict[str, str]] = {
        "wav": "riff-24khz-16bit-mono-pcm",
        "ogg": "ogg-48khz-16bit-mono-opus",
        "mp3": "audio-24khz-96kbitrate-mono-mp3",
    }

    def __init__(
        self, api_key: str, region: str, timeout: int = 60, http_client: AsyncHTTPClient | None = None
    ) -> None:
        self.api_key = api_key
        self.region = region
        self.endpoint = f"https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"
        self.timeout = timeout
        self.http_client = http_client

    def resolve_voice(self, voice_type: VoiceType, region: VoiceRegion) -> str:
        return AZURE_VOICES[voice_type][region]

    async def synthesize(self, text: str, voice: str, output_format: str = "mp3") -> bytes:
        headers = {
            "Ocp-Apim-Subscription-Key": self.api_key,
            "Content-Type": "application/ssml+xml",
            "X-Microsoft-OutputFormat": self.OUTPUT_FORMATS.get(output_format, self.OUTPUT_FORMATS["mp3"]),
            "User-Agent": "sports-reels-tts",
        }
        locale = self._derive_language_from_voice(voice)
        ssml = (
            f"<speak version='1.0' xml:lang='{locale}'>"
            f"<voice xml:lang='{locale}' name='{voice}'>{escape(text)}</voice></speak>"
        )
        client = self.http_client or AsyncHTTPClient(timeout=self.timeout)
        try:
            async with client:
                return await client.post_bytes(self.endpoint, ssml.encode("utf-8"), headers=headers)
        except aiohttp.ClientResponseError as e:
            raise classify_status(e.status, e.message, provider="azure-tts", stage="speech") from e

    @staticmethod
    def _derive_language_from_voice(voice: str) -> str:
        parts = voice.split("-")
        if len(parts) >= 2:
            return "-".join(parts[:2])
        return "en-US"
