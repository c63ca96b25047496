from abc import ABC, abstractmethod

from shared.models import ScriptDraft, SubjectProfile


class ScriptDriver(ABC):
    """Abstract base class for script generation drivers."""

    name = "base"

    @abstractmethod
    async def generate_script(
        self,
        subject: SubjectProfile,
        target_duration_seconds: int,
        style_hints: str | None = None,
        custom_prompt: str | None = None,
    ) -> ScriptDraft:
        """Produce narration text plus title, description and hashtags for a subject."""
        pass
