"""OpenAI chat-completions driver for script generation."""

from __future__ import annotations

import asyncio
import math
from typing import Any

import openai

from services.script_generation import prompts
from shared.errors import ErrorKind, ProviderError
from shared.models import ScriptDraft, SubjectProfile
from shared.openai_client import classify_openai_error, create_openai_client
from shared.utils import config, setup_logging

from .base import ScriptDriver

logger = setup_logging("openai-script-driver")


class OpenAIScriptDriver(ScriptDriver):
    """Generates the narration with the main model and the packaging copy with the fast model."""

    name = "openai"

    def __init__(self, client: Any = None, model: str | None = None, fast_model: str | None = None):
        self.client = client or create_openai_client(async_client=True)
        self.model = model or config.get("openai_script_model", "gpt-4-turbo-preview")
        self.fast_model = fast_model or config.get("openai_fast_model", "gpt-3.5-turbo")

    async def _complete(
        self,
        model: str,
        system_prompt: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> tuple[str, int]:
        response = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", None) or math.ceil(len(content) / 4)
        return content.strip(), int(tokens)

    async def generate_script(
        self,
        subject: SubjectProfile,
        target_duration_seconds: int,
        style_hints: str | None = None,
        custom_prompt: str | None = None,
    ) -> ScriptDraft:
        target_words = prompts.calculate_target_words(target_duration_seconds)
        prompt = custom_prompt or prompts.build_script_prompt(subject, target_duration_seconds, style_hints)
        system_prompt = prompts.render(
            prompts.SCRIPT_SYSTEM_PROMPT,
            {"duration": target_duration_seconds, "name": subject.name, "sport": subject.sport},
        )

        try:
            script, tokens = await self._complete(
                self.model,
                system_prompt,
                prompt,
                max_tokens=target_words * 2,
                temperature=float(config.get_pipeline_value("script.temperature", 0.7)),
            )
        except openai.OpenAIError as e:
            raise classify_openai_error(e, stage="script") from e

        if not script:
            raise ProviderError("openai", "Empty script generated", ErrorKind.EXTERNAL_RETRYABLE, stage="script")

        (title, title_tokens), (description, description_tokens), (hashtags, hashtag_tokens) = await asyncio.gather(
            self._generate_title(subject, script),
            self._generate_description(subject, script, target_duration_seconds),
            self._generate_hashtags(subject, script),
        )

        return ScriptDraft(
            text=script,
            title=title,
            description=description,
            hashtags=hashtags,
            tokens_used=tokens + title_tokens + description_tokens + hashtag_tokens,
            model=self.model,
        )

    # Packaging copy is best-effort: failures fall back to templated text.

    async def _generate_title(self, subject: SubjectProfile, script: str) -> tuple[str, int]:
        prompt = prompts.render(
            prompts.TITLE_TEMPLATE,
            {"name": subject.name, "sport": subject.sport, "focus": prompts.extract_focus_point(script)},
        )
        try:
            title, tokens = await self._complete(self.fast_model, prompts.TITLE_SYSTEM_PROMPT, prompt, 50, 0.8)
        except openai.OpenAIError as e:
            logger.warning(f"Title generation failed for {subject.name}: {e}")
            return prompts.fallback_title(subject), 0
        return title.strip('"') or prompts.fallback_title(subject), tokens

    async def _generate_description(self, subject: SubjectProfile, script: str, duration: int) -> tuple[str, int]:
        prompt = prompts.render(
            prompts.DESCRIPTION_TEMPLATE,
            {"name": subject.name, "sport": subject.sport, "summary": script[:200] + "...", "duration": duration},
        )
        try:
            description, tokens = await self._complete(
                self.fast_model, prompts.DESCRIPTION_SYSTEM_PROMPT, prompt, 100, 0.7
            )
        except openai.OpenAIError as e:
            logger.warning(f"Description generation failed for {subject.name}: {e}")
            return prompts.fallback_description(subject), 0
        return description or prompts.fallback_description(subject), tokens

    async def _generate_hashtags(self, subject: SubjectProfile, script: str) -> tuple[list[str], int]:
        prompt = prompts.render(
            prompts.HASHTAG_TEMPLATE,
            {"name": subject.name, "sport": subject.sport, "focus": prompts.extract_focus_point(script)},
        )
        try:
            raw, tokens = await self._complete(self.fast_model, prompts.HASHTAG_SYSTEM_PROMPT, prompt, 100, 0.6)
        except openai.OpenAIError as e:
            logger.warning(f"Hashtag generation failed for {subject.name}: {e}")
            return prompts.fallback_hashtags(subject), 0
        return prompts.parse_hashtags(raw) or prompts.fallback_hashtags(subject), tokens
