from abc import ABC, abstractmethod

from shared.models import ComposedVideo, ComposeRequest


class VideoComposer(ABC):
    """Abstract base class for video composition drivers."""

    name = "base"

    @abstractmethod
    async def compose(self, request: ComposeRequest) -> ComposedVideo:
        """Render the frames over the narration into one encoded video."""
        pass
