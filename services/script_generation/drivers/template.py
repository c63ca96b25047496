"""Offline script driver that assembles narration from the subject profile."""

import re

from services.script_generation import prompts
from shared.models import ScriptDraft, SubjectProfile

from .base import ScriptDriver


class TemplateScriptDriver(ScriptDriver):
    """Deterministic scripts for development and for running without an LLM key."""

    name = "template"

    async def generate_script(
        self,
        subject: SubjectProfile,
        target_duration_seconds: int,
        style_hints: str | None = None,
        custom_prompt: str | None = None,
    ) -> ScriptDraft:
        target_words = prompts.calculate_target_words(target_duration_seconds)
        team = f" with {subject.team}" if subject.team else ""
        position = f" as a {subject.position.lower()}" if subject.position else ""

        opening = [
            f"Few names in {subject.sport} carry the weight of *{subject.name}*.",
            f"This is the story of a career built{position}{team}, one moment at a time. [PAUSE]",
        ]
        closing = [
            f"Today, {subject.name} stands as a true {subject.sport} legend whose impact reaches far beyond the game.",
            "Who is your all-time favorite? Share it in the comments.",
        ]
        if subject.achievements:
            achievements = ", ".join(subject.achievements[:5])
            closing.insert(0, f"The record speaks for itself: {achievements}. [PAUSE]")

        fixed_words = sum(len(sentence.split()) for sentence in opening + closing)
        body: list[str] = []
        for sentence in re.split(r"(?<=[.!?])\s+", subject.biography.strip()):
            if not sentence:
                continue
            if fixed_words + len(sentence.split()) > target_words:
                break
            body.append(sentence)
            fixed_words += len(sentence.split())

        text = " ".join(opening + body + closing)
        return ScriptDraft(
            text=text,
            title=prompts.fallback_title(subject),
            description=prompts.fallback_description(subject),
            hashtags=prompts.fallback_hashtags(subject),
            tokens_used=0,
            model=self.name,
        )
