"""Speech driver implementations"""

from shared.utils import config

from .azure import AzureSpeechDriver
from .base import SpeechDriver
from .openai_tts import OpenAISpeechDriver
from .tone import ToneSpeechDriver


def create_speech_driver(name: str | None = None) -> SpeechDriver:
    driver_name = name or config.get("tts_driver", "openai")
    if driver_name == OpenAISpeechDriver.name:
        return OpenAISpeechDriver()
    if driver_name == AzureSpeechDriver.name:
        api_key = config.get("azure_speech_key")
        if not api_key:
            raise ValueError("Azure speech key not configured. Set AZURE_SPEECH_KEY environment variable.")
        return AzureSpeechDriver(api_key, config.get("azure_speech_region", "eastus"))
    if driver_name == ToneSpeechDriver.name:
        return ToneSpeechDriver()
    raise ValueError(f"TTS driver '{driver_name}' is not configured")


__all__ = ["AzureSpeechDriver", "OpenAISpeechDriver", "SpeechDriver", "ToneSpeechDriver", "create_speech_driver"]
