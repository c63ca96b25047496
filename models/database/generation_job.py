"""
Generation job model - durable history of reel generation requests
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text

from database import Base


class GenerationJob(Base):
    """Persisted state of one reel generation job"""

    __tablename__ = "generation_jobs"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(100), nullable=False, index=True)
    subject_name = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING", index=True)  # PENDING, PROCESSING, COMPLETED, FAILED, CANCELLED
    priority = Column(Integer, nullable=False, default=3)
    voice_type = Column(String(50), nullable=False, default="MALE_NARRATOR")
    duration = Column(Integer, nullable=False, default=60)
    quality = Column(String(10), nullable=False, default="1080p")
    include_subtitles = Column(Boolean, nullable=False, default=True)
    prompt = Column(Text, nullable=True)
    request_payload = Column(JSON, default=dict)
    progress = Column(Integer, nullable=False, default=0)
    script_generated = Column(Boolean, nullable=False, default=False)
    voice_generated = Column(Boolean, nullable=False, default=False)
    video_generated = Column(Boolean, nullable=False, default=False)
    generated_script = Column(Text, nullable=True)
    generated_title = Column(String(300), nullable=True)
    generated_video_url = Column(String(1000), nullable=True)
    thumbnail_url = Column(String(1000), nullable=True)
    audio_url = Column(String(1000), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    total_cost = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<GenerationJob(id={self.id}, subject_id={self.subject_id}, status={self.status})>"
