from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

from jobtracker.models.base import CamelModel


class CacheType(str, Enum):
    EXTRACTION = "knowledge-extraction"
    RESEARCH = "knowledge-research"


class KnowledgeExtractionRequest(CamelModel):
    job_title: str = Field(min_length=1, max_length=500)
    requirements: str = Field(min_length=1)
    job_description: str = Field(min_length=1)
    job_id: str | None = None
    force_refresh: bool = False


class KnowledgeExtractionResult(CamelModel):
    extracted_knowledge: str
    from_cache: bool
    tokens_used: int | None = None
    response_time: int = Field(description="Milliseconds, whole operation")


class KnowledgeResearchRequest(CamelModel):
    knowledge_item: str = Field(min_length=1, max_length=200)
    proficiency_level: str = Field(min_length=1, max_length=100)
    force_refresh: bool = False


class KnowledgeResearchResult(CamelModel):
    research_content: str
    from_cache: bool
    tokens_used: int | None = None
    response_time: int = Field(description="Milliseconds, whole operation")


class CacheEntry(CamelModel):
    """One memoized AI response."""

    cache_type: CacheType
    cache_key: str
    input_hash: str | None = None  # extraction only
    job_id: str | None = None
    knowledge_item: str | None = None  # research only
    proficiency_level: str | None = None
    response_content: str
    ai_model: str
    tokens_used: int | None = None
    response_time_ms: int | None = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
