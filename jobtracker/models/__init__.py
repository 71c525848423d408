from .job import Job, JobCreate, JobStatus, JobUpdate
from .knowledge import (
    CacheEntry,
    CacheType,
    KnowledgeExtractionRequest,
    KnowledgeExtractionResult,
    KnowledgeResearchRequest,
    KnowledgeResearchResult,
)
from .response import ApiResponse, ImportResult, IndexRebuildReport, Pagination

__all__ = [
    "Job",
    "JobCreate",
    "JobStatus",
    "JobUpdate",
    "CacheEntry",
    "CacheType",
    "KnowledgeExtractionRequest",
    "KnowledgeExtractionResult",
    "KnowledgeResearchRequest",
    "KnowledgeResearchResult",
    "ApiResponse",
    "ImportResult",
    "IndexRebuildReport",
    "Pagination",
]
