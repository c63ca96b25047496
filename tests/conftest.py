import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from database import Base
from models.database import GenerationJob  # noqa: F401
from services.generation.job_store import InMemoryJobStore
from services.generation.pipeline import GenerationPipeline
from services.media.drivers.base import VideoComposer
from services.media.images import render_placeholder
from services.script_generation.drivers.base import ScriptDriver
from services.storage.drivers.local import LocalObjectStore
from services.tts_service.drivers.base import SpeechDriver
from services.tts_service.service import SpeechService
from services.websocket_progress import websocket_manager
from shared.models import (
    ComposedVideo,
    ComposeRequest,
    GenerationRequest,
    ScriptDraft,
    SubjectProfile,
    VoiceRegion,
    VoiceType,
)
from shared.utils import config as service_config, ensure_directory

VALID_SCRIPT = (
    "Few names in basketball carry the weight of *Jordan Rivers*. [PAUSE] "
    "He turned a quiet start into six championships and a reputation for clutch shots. "
    "Every season he raised the bar for the players around him and for the fans who watched. "
    "Today he stands as a true basketball legend."
)


@pytest.fixture(scope="session")
def session_factory(tmp_path_factory: pytest.TempPathFactory) -> Callable:
    """Create a SQLite session factory for tests."""
    db_dir = tmp_path_factory.mktemp("reels-db")
    db_path = db_dir / "test.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


class DummyRedis:
    """In-memory stand-in for the subset of ``redis.asyncio`` commands the job store uses."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._zsets: dict[str, dict[str, float]] = {}

    async def ping(self) -> bool:
        return True

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def get(self, key: str):
        return self._values.get(key)

    async def zadd(self, key: str, mapping: dict[str, float]) -> None:
        self._zsets.setdefault(key, {}).update(mapping)

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        members = sorted(self._zsets.get(key, {}).items(), key=lambda item: item[1], reverse=True)
        names = [name for name, _ in members]
        return names[start:] if end == -1 else names[start : end + 1]

    def pipeline(self) -> "DummyPipeline":
        return DummyPipeline(self)


class DummyPipeline:
    def __init__(self, client: DummyRedis) -> None:
        self.client = client
        self.commands: list[tuple[str, tuple]] = []

    def set(self, *args) -> "DummyPipeline":
        self.commands.append(("set", args))
        return self

    def zadd(self, *args) -> "DummyPipeline":
        self.commands.append(("zadd", args))
        return self

    async def execute(self) -> list:
        return [await getattr(self.client, name)(*args) for name, args in self.commands]


@pytest.fixture
def fake_redis() -> DummyRedis:
    return DummyRedis()


@pytest.fixture(autouse=True)
def test_environment(tmp_path: Path) -> Generator:
    """Point storage at a per-test media root and reset shared singletons."""
    media_root = tmp_path / "media"
    ensure_directory(str(media_root))

    os.environ["MEDIA_ROOT"] = str(media_root)
    service_config.set("media_root", str(media_root))
    service_config.set("cdn_base_url", None)

    # Reset WebSocket manager between tests to avoid leakage
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(websocket_manager.reset())
    finally:
        loop.close()

    yield media_root


# Stub providers


class StubScriptDriver(ScriptDriver):
    """Returns queued outcomes in order; an Exception entry is raised instead of returned."""

    name = "stub"

    def __init__(self, outcomes: list | None = None, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls = 0

    async def generate_script(
        self,
        subject: SubjectProfile,
        target_duration_seconds: int,
        style_hints: str | None = None,
        custom_prompt: str | None = None,
    ) -> ScriptDraft:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else VALID_SCRIPT
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ScriptDraft):
            return outcome
        return ScriptDraft(text=outcome, title=f"{subject.name}: Legend", tokens_used=500)


class RecordingSpeechDriver(SpeechDriver):
    name = "recording"
    max_input_chars = 3000
    content_type = "audio/mpeg"

    def __init__(self) -> None:
        self.inputs: list[str] = []

    def resolve_voice(self, voice_type: VoiceType, region: VoiceRegion) -> str:
        return f"{voice_type.value}-{region.value}"

    async def synthesize(self, text: str, voice: str, output_format: str = "mp3") -> bytes:
        self.inputs.append(text)
        return f"<{text}>".encode("utf-8")


class StubImageResolver:
    async def resolve(self, request: GenerationRequest, size: tuple[int, int]) -> list[bytes]:
        return [render_placeholder(request.subject, (64, 36), index) for index in range(2)]


class StubComposer(VideoComposer):
    name = "stub"

    def __init__(self) -> None:
        self.requests: list[ComposeRequest] = []

    async def compose(self, request: ComposeRequest) -> ComposedVideo:
        self.requests.append(request)
        return ComposedVideo(video=b"video:" + request.audio[:16])


@pytest.fixture
def subject() -> SubjectProfile:
    return SubjectProfile(
        id="athlete-1",
        name="Jordan Rivers",
        sport="Basketball",
        biography="Jordan Rivers grew up in Chicago. He was drafted third overall.",
        achievements=("6x Champion", "5x MVP"),
        position="Guard",
        team="Chicago Bulls",
    )


@pytest.fixture
def generation_request(subject: SubjectProfile) -> GenerationRequest:
    return GenerationRequest(subject=subject, duration=30)


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def make_pipeline(job_store: InMemoryJobStore, test_environment: Path) -> Callable[..., GenerationPipeline]:
    def _make(script_driver: ScriptDriver | None = None, **kwargs) -> GenerationPipeline:
        return GenerationPipeline(
            script_driver=script_driver or StubScriptDriver(),
            speech_service=kwargs.pop("speech_service", SpeechService(RecordingSpeechDriver())),
            image_resolver=kwargs.pop("image_resolver", StubImageResolver()),
            composer=kwargs.pop("composer", StubComposer()),
            object_store=kwargs.pop("object_store", LocalObjectStore(root=str(test_environment))),
            job_store=kwargs.pop("job_store", job_store),
            **kwargs,
        )

    return _make
