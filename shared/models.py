from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VoiceType(str, Enum):
    MALE_NARRATOR = "MALE_NARRATOR"
    FEMALE_NARRATOR = "FEMALE_NARRATOR"
    SPORTS_COMMENTATOR = "SPORTS_COMMENTATOR"
    DOCUMENTARY_STYLE = "DOCUMENTARY_STYLE"
    ENERGETIC_HOST = "ENERGETIC_HOST"
    CALM_NARRATOR = "CALM_NARRATOR"


class VoiceRegion(str, Enum):
    US = "US"
    UK = "UK"
    AU = "AU"


class VideoQuality(str, Enum):
    HD = "720p"
    FULL_HD = "1080p"


class VideoStyle(str, Enum):
    DOCUMENTARY = "documentary"
    ENERGETIC = "energetic"
    INSPIRATIONAL = "inspirational"
    HIGHLIGHT = "highlight"


class PipelineStage(str, Enum):
    """Ordered stages of one pipeline execution."""

    SCRIPT = "script"
    SPEECH = "speech"
    IMAGES = "images"
    VIDEO = "video"
    UPLOAD = "upload"
    COMPLETE = "complete"
    ERROR = "error"


class JobStatus(str, Enum):
    """Persisted status of a generation job."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


# Request models
class SubjectProfile(BaseModel):
    """The sports personality a reel is about."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    sport: str = Field(..., min_length=1, max_length=100)
    biography: str = Field(default="", max_length=10000)
    achievements: tuple[str, ...] = Field(default_factory=tuple)
    position: str | None = None
    team: str | None = None
    nationality: str | None = None
    image_url: str | None = None


class GenerationRequest(BaseModel):
    """Immutable description of the reel a caller wants."""

    model_config = ConfigDict(frozen=True)

    subject: SubjectProfile
    duration: int = Field(default=60, ge=15, le=120, description="Target duration in seconds")
    voice_type: VoiceType = VoiceType.MALE_NARRATOR
    voice_region: VoiceRegion = VoiceRegion.US
    style: VideoStyle = VideoStyle.DOCUMENTARY
    quality: VideoQuality = VideoQuality.FULL_HD
    include_subtitles: bool = True
    custom_prompt: str | None = Field(default=None, max_length=2000)
    image_urls: tuple[str, ...] = Field(default_factory=tuple)


# Pipeline models
class StageProgress(BaseModel):
    stage: PipelineStage
    progress: int = Field(..., ge=0, le=100)
    message: str
    estimated_time_remaining: float | None = None


class ScriptDraft(BaseModel):
    """What a script provider returns."""

    text: str
    title: str = ""
    description: str = ""
    hashtags: list[str] = Field(default_factory=list)
    tokens_used: int = 0
    model: str | None = None


class ScriptValidation(BaseModel):
    valid: bool
    issues: list[str] = Field(default_factory=list)
    word_count: int
    estimated_duration: int


class SpeechAudio(BaseModel):
    """Narration audio assembled from one or more synthesized chunks."""

    audio: bytes
    content_type: str = "audio/mpeg"
    characters: int = 0
    chunks: int = 0
    voice: str = ""


class SubtitleCue(BaseModel):
    start_time: float
    end_time: float
    text: str


class ComposeRequest(BaseModel):
    audio: bytes
    images: list[bytes]
    duration_seconds: float
    width: int
    height: int
    bitrate: str = "5000k"
    subtitles: list[SubtitleCue] | None = None


class ComposedVideo(BaseModel):
    video: bytes
    content_type: str = "video/mp4"
    metadata: dict[str, Any] = Field(default_factory=dict)


class StoredObject(BaseModel):
    key: str
    url: str
    size: int = 0
    content_type: str | None = None


class CostBreakdown(BaseModel):
    openai: float = 0.0
    speech: float = 0.0
    storage: float = 0.0
    total: float = 0.0


class GenerationResult(BaseModel):
    job_id: str
    video_url: str
    video_key: str
    thumbnail_url: str
    thumbnail_key: str
    audio_url: str
    audio_key: str
    script: str
    title: str
    description: str
    hashtags: list[str]
    duration: int
    resolution: str
    file_size: int
    generation_time: float
    costs: CostBreakdown


# Persistence models
class JobRecord(BaseModel):
    """Durable state of one generation job."""

    id: str
    subject_id: str
    subject_name: str | None = None
    status: JobStatus = JobStatus.PENDING
    priority: int = 3
    voice_type: VoiceType = VoiceType.MALE_NARRATOR
    duration: int = 60
    quality: VideoQuality = VideoQuality.FULL_HD
    include_subtitles: bool = True
    prompt: str | None = None
    request_payload: dict[str, Any] = Field(default_factory=dict)
    progress: int = 0
    script_generated: bool = False
    voice_generated: bool = False
    video_generated: bool = False
    generated_script: str | None = None
    generated_title: str | None = None
    generated_video_url: str | None = None
    thumbnail_url: str | None = None
    audio_url: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    total_cost: float = 0.0
    created_at: datetime
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobQuery(BaseModel):
    status: JobStatus | None = None
    subject_id: str | None = None
    limit: int | None = Field(default=None, ge=1)


# Queue models
class QueueJob(BaseModel):
    """In-memory queue entry; never persisted."""

    id: str
    request: GenerationRequest
    priority: int
    created_at: datetime
    sequence: int
    attempts: int = 0
    max_attempts: int = 3
    retry_count: int = 0
    delay: float | None = None
    scheduled_at: float | None = None
    progress: StageProgress | None = None
    error: str | None = None


class QueueMetricsSnapshot(BaseModel):
    total_jobs: int
    completed_jobs: int
    failed_jobs: int
    active_jobs: int
    queued_jobs: int
    average_processing_time: float
    success_rate: float


class QueueStatus(BaseModel):
    processing: bool
    paused: bool
    active_jobs: int
    queued_jobs: int
    total_jobs: int


# API models
class GenerateJobRequest(GenerationRequest):
    priority: int = Field(default=3, description="Higher is served first; clamped to the supported range")
    delay: float | None = Field(default=None, ge=0, description="Seconds before the job becomes eligible")
    max_attempts: int | None = Field(default=None, ge=1, le=10)

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(**self.model_dump(exclude={"priority", "delay", "max_attempts"}))


class GenerateJobResponse(BaseModel):
    job_id: str
    status: JobStatus


class JobStatusResponse(BaseModel):
    job: JobRecord
    queued: bool
    active: bool
    attempts: int | None = None
    progress: StageProgress | None = None


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    success: bool = Field(default=True, description="Whether the operation was successful")
    message: str = Field(default="Operation completed successfully", description="Response message")
    data: dict[str, Any] | None = Field(None, description="Response data")
