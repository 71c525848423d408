"""Knowledge extraction and research endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from jobtracker.dependencies import get_knowledge_service
from jobtracker.models.knowledge import (
    KnowledgeExtractionRequest,
    KnowledgeExtractionResult,
    KnowledgeResearchRequest,
    KnowledgeResearchResult,
)
from jobtracker.models.response import ApiResponse
from jobtracker.services.knowledge_service import KnowledgeService

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"])


@router.post("/extract", response_model_exclude_none=True)
async def extract_knowledge(
    body: KnowledgeExtractionRequest,
    knowledge: KnowledgeService = Depends(get_knowledge_service),
) -> ApiResponse[KnowledgeExtractionResult]:
    """Extract the technical knowledge a job posting asks for."""
    result = await knowledge.extract(body)
    suffix = " (from cache)" if result.from_cache else ""
    return ApiResponse(success=True, data=result, message=f"Knowledge extracted successfully{suffix}")


@router.post("/research", response_model_exclude_none=True)
async def research_knowledge(
    body: KnowledgeResearchRequest,
    knowledge: KnowledgeService = Depends(get_knowledge_service),
) -> ApiResponse[KnowledgeResearchResult]:
    """Summarize one knowledge item at the requested proficiency level."""
    result = await knowledge.research(body)
    suffix = " (from cache)" if result.from_cache else ""
    return ApiResponse(
        success=True, data=result, message=f"Knowledge research completed successfully{suffix}"
    )
