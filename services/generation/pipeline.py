"""
Stage pipeline for one reel generation attempt.

Stages run strictly in order: script, speech, images, video, upload. Each stage reports
a fixed progress checkpoint before it starts and the run ends with a ``complete``
event. The pipeline never retries across stages; a failure is classified and raised to
the queue, which owns the retry decision. The only internal loop is the bounded
re-generation of a script that fails content validation.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from services.generation.job_store import JobStore
from services.media.drivers.base import VideoComposer
from services.media.images import ImageResolver, make_thumbnail
from services.media.subtitles import build_subtitle_cues
from services.script_generation.drivers.base import ScriptDriver
from services.script_generation.prompts import STYLE_HINTS
from services.script_generation.validation import validate_script
from services.storage.drivers.base import ObjectStore
from services.tts_service.service import SpeechService, strip_delivery_markers
from shared.errors import JobCancelledError, ScriptValidationError, classify_error
from shared.models import (
    ComposeRequest,
    CostBreakdown,
    GenerationRequest,
    GenerationResult,
    PipelineStage,
    ScriptDraft,
    StageProgress,
    VideoQuality,
)
from shared.utils import config, sanitize_filename, setup_logging

logger = setup_logging("generation-pipeline")

ProgressCallback = Callable[[StageProgress], Awaitable[None]]

# stage -> (percent, estimated seconds remaining, message)
STAGE_CHECKPOINTS: dict[PipelineStage, tuple[int, float | None, str]] = {
    PipelineStage.SCRIPT: (10, 180, "Generating AI script..."),
    PipelineStage.SPEECH: (30, 120, "Converting script to speech..."),
    PipelineStage.IMAGES: (50, 90, "Preparing images..."),
    PipelineStage.VIDEO: (70, 60, "Creating video..."),
    PipelineStage.UPLOAD: (90, 30, "Uploading to cloud storage..."),
    PipelineStage.COMPLETE: (100, 0, "Video generation complete!"),
}

AUDIO_EXTENSIONS = {"audio/mpeg": "mp3", "audio/wav": "wav", "audio/ogg": "ogg"}


def resolution_for(quality: VideoQuality) -> tuple[int, int]:
    presets = config.get_pipeline_value("video.resolutions", {}) or {}
    width, height = presets.get(quality.value, (1920, 1080) if quality == VideoQuality.FULL_HD else (1280, 720))
    return int(width), int(height)


def bitrate_for(quality: VideoQuality) -> str:
    bitrates = config.get_pipeline_value("video.bitrates", {}) or {}
    return str(bitrates.get(quality.value, "5000k" if quality == VideoQuality.FULL_HD else "2500k"))


def calculate_costs(tokens_used: int, speech_characters: int, stored_bytes: int) -> CostBreakdown:
    """Provider spend for one attempt, rounded to cents."""
    openai_cost = tokens_used / 1000 * float(config.get_pipeline_value("costs.openai_per_1k_tokens", 0.01))
    speech_cost = speech_characters / 1_000_000 * float(config.get_pipeline_value("costs.speech_per_1m_chars", 16.0))
    storage_cost = stored_bytes / 1024**3 * float(config.get_pipeline_value("costs.storage_per_gb", 0.023))
    return CostBreakdown(
        openai=round(openai_cost, 2),
        speech=round(speech_cost, 2),
        storage=round(storage_cost, 2),
        total=round(openai_cost + speech_cost + storage_cost, 2),
    )


class GenerationPipeline:
    """Drives one request through every stage using injected providers."""

    def __init__(
        self,
        script_driver: ScriptDriver,
        speech_service: SpeechService,
        image_resolver: ImageResolver,
        composer: VideoComposer,
        object_store: ObjectStore,
        job_store: JobStore | None = None,
        validation_attempts: int | None = None,
    ) -> None:
        self.script_driver = script_driver
        self.speech_service = speech_service
        self.image_resolver = image_resolver
        self.composer = composer
        self.object_store = object_store
        self.job_store = job_store
        self.validation_attempts = validation_attempts or int(
            config.get_pipeline_value("script.validation_attempts", 3)
        )

    async def run(
        self,
        job_id: str,
        request: GenerationRequest,
        on_progress: ProgressCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> GenerationResult:
        started = time.monotonic()
        state = {"stage": PipelineStage.SCRIPT, "percent": 0}

        async def enter(stage: PipelineStage) -> None:
            if should_continue is not None and not should_continue():
                raise JobCancelledError(job_id)
            percent, eta, message = STAGE_CHECKPOINTS[stage]
            state["stage"], state["percent"] = stage, percent
            if on_progress is not None:
                await on_progress(
                    StageProgress(stage=stage, progress=percent, message=message, estimated_time_remaining=eta)
                )

        async def record(**fields: object) -> None:
            if should_continue is not None and not should_continue():
                raise JobCancelledError(job_id)
            if self.job_store is not None:
                await self.job_store.update(job_id, **fields)

        try:
            await enter(PipelineStage.SCRIPT)
            draft = await self._generate_script(request)
            await record(script_generated=True, generated_script=draft.text, generated_title=draft.title)

            await enter(PipelineStage.SPEECH)
            speech = await self.speech_service.synthesize_script(draft.text, request.voice_type, request.voice_region)
            await record(voice_generated=True)

            await enter(PipelineStage.IMAGES)
            width, height = resolution_for(request.quality)
            images = await self.image_resolver.resolve(request, (width, height))

            await enter(PipelineStage.VIDEO)
            subtitles = None
            if request.include_subtitles:
                subtitles = build_subtitle_cues(strip_delivery_markers(draft.text), request.duration)
            composed = await self.composer.compose(
                ComposeRequest(
                    audio=speech.audio,
                    images=images,
                    duration_seconds=request.duration,
                    width=width,
                    height=height,
                    bitrate=bitrate_for(request.quality),
                    subtitles=subtitles,
                )
            )
            await record(video_generated=True)

            await enter(PipelineStage.UPLOAD)
            folder = f"reels/{job_id}"
            slug = sanitize_filename(request.subject.name.lower())
            video = await self.object_store.upload(composed.video, folder, f"{slug}.mp4", composed.content_type)
            thumbnail = await self.object_store.upload(make_thumbnail(images[0]), folder, "thumbnail.jpg", "image/jpeg")
            extension = AUDIO_EXTENSIONS.get(speech.content_type, "mp3")
            audio = await self.object_store.upload(speech.audio, folder, f"narration.{extension}", speech.content_type)

            costs = calculate_costs(draft.tokens_used, speech.characters, video.size + thumbnail.size + audio.size)
            await enter(PipelineStage.COMPLETE)
        except Exception as exc:
            error = classify_error(exc, stage=state["stage"].value)
            if not isinstance(error, JobCancelledError) and on_progress is not None:
                await on_progress(
                    StageProgress(stage=PipelineStage.ERROR, progress=state["percent"], message=error.user_message)
                )
            if error is exc:
                raise
            raise error from exc

        return GenerationResult(
            job_id=job_id,
            video_url=video.url,
            video_key=video.key,
            thumbnail_url=thumbnail.url,
            thumbnail_key=thumbnail.key,
            audio_url=audio.url,
            audio_key=audio.key,
            script=draft.text,
            title=draft.title,
            description=draft.description,
            hashtags=draft.hashtags,
            duration=request.duration,
            resolution=request.quality.value,
            file_size=video.size,
            generation_time=round(time.monotonic() - started, 3),
            costs=costs,
        )

    async def _generate_script(self, request: GenerationRequest) -> ScriptDraft:
        style_hints = STYLE_HINTS.get(request.style)
        tokens_used = 0
        issues: list[str] = []

        for attempt in range(1, self.validation_attempts + 1):
            draft = await self.script_driver.generate_script(
                request.subject,
                request.duration,
                style_hints=style_hints,
                custom_prompt=request.custom_prompt,
            )
            tokens_used += draft.tokens_used
            validation = validate_script(draft.text)
            if validation.valid:
                return draft.model_copy(update={"tokens_used": tokens_used})
            issues = validation.issues
            logger.warning(
                f"Script for {request.subject.name} failed validation "
                f"(attempt {attempt}/{self.validation_attempts}): {issues}"
            )

        raise ScriptValidationError(issues)

