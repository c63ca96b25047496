"""Builder for OpenAI clients and classification of OpenAI SDK errors."""

from __future__ import annotations

import os

import openai
from openai import AsyncOpenAI, OpenAI

from shared.errors import ErrorKind, GenerationError, ProviderError, classify_status
from shared.utils import config


def create_openai_client(
    api_key: str | None = None,
    async_client: bool = True,
) -> AsyncOpenAI | OpenAI:
    """
    Create a direct OpenAI client.

    Args:
        api_key: OpenAI API key (auto-detected if None)
        async_client: Whether to return AsyncOpenAI (True) or sync OpenAI (False)

    Returns:
        Configured AsyncOpenAI or OpenAI client

    Raises:
        ValueError: If API key is not configured
    """
    api_key = api_key or config.get("openai_api_key") or os.getenv("OPENAI_API_KEY")

    if not api_key:
        raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

    if async_client:
        return AsyncOpenAI(api_key=api_key, timeout=60.0)
    return OpenAI(api_key=api_key, timeout=60.0)


def classify_openai_error(error: Exception, stage: str) -> GenerationError:
    """Map an OpenAI SDK exception onto the error taxonomy."""
    if isinstance(error, openai.APITimeoutError):
        return ProviderError("openai", "request timed out", ErrorKind.TEMPORARY, stage=stage, status_code=504)
    if isinstance(error, openai.APIConnectionError):
        return ProviderError("openai", "connection failed", ErrorKind.TEMPORARY, stage=stage, status_code=503)
    if isinstance(error, openai.APIStatusError):
        return classify_status(error.status_code, error.message, provider="openai", stage=stage)
    return ProviderError("openai", str(error), ErrorKind.SYSTEM, stage=stage, status_code=500)
