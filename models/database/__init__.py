"""
Database models package - SQLAlchemy ORM models
"""

from .generation_job import GenerationJob

__all__ = ["GenerationJob"]
