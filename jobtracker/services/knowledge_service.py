"""Knowledge extraction and research, memoized in the AI response cache.

Request flow:
    force_refresh -> generate -> persist
    otherwise     -> fresh cache entry? return it : generate -> persist

Lookup failures count as a miss and persist failures are logged; neither
fails the request. Generation failures (after retries) do, and leave the
cache untouched.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from jobtracker.errors import RetryableRemoteError, StorageError, ValidationError
from jobtracker.keys import extraction_cache_key, extraction_input_hash, research_cache_key
from jobtracker.models.knowledge import (
    CacheEntry,
    CacheType,
    KnowledgeExtractionRequest,
    KnowledgeExtractionResult,
    KnowledgeResearchRequest,
    KnowledgeResearchResult,
)
from jobtracker.services.job_service import utcnow
from jobtracker.services.llm_service import Generation, TextGenerator
from jobtracker.services.retry import RetryPolicy, execute_with_retry
from jobtracker.stores.cache_store import CacheStore

logger = logging.getLogger(__name__)

MIN_RESEARCH_LENGTH = 100
_RESEARCH_SECTIONS = ("Core Concepts", "Essential Knowledge", "Practical Application")

EXTRACTION_SYSTEM = """\
You are an expert technical recruiter. Extract ONLY specific, concrete technical \
skills and knowledge areas from a job posting.

Extract: programming languages, frameworks and libraries (with versions when \
given), databases, cloud services, DevOps and development tools, named \
methodologies, protocols and standards, architecture patterns, testing \
frameworks, data processing and security tools.

Do not extract: generic phrases ("Software Development"), soft skills, business \
concepts, general abilities, responsibilities without a named tool, industry \
domains, or years of experience.

Pick the proficiency level for each item from exactly these phrases:
- Deep knowledge: "deep understanding", "architect", "in-depth", "mastery"
- Expert level: "expert", "advanced", "extensive experience"
- Intermediate understanding: "solid", "proficient", "comfortable with"
- Working knowledge: "familiarity", "exposure to", "basic knowledge"
- Hands-on experience required: "must have used", "demonstrated experience"
- Practical application: "implement solutions", "production environment"

Items under "required" or in senior titles lean higher; "nice to have" or \
junior titles lean lower.

Output one item per line, most important first, 5-20 lines, nothing else:
<Technology/Skill>: <Proficiency level>
"""

RESEARCH_SYSTEM = """\
You are a learning advisor. Write a concise knowledge overview for interview \
preparation: simple language, bullet points, 300-400 words, no code and no links.

Structure, with **bold** section headers:
1. **Core Concepts**: 2-3 sentences defining the topic and why it matters.
2. **Essential Knowledge**: 4-6 key points and terminology.
3. **Practical Application**: 2-3 points on when and why it is used.

Match the depth to the proficiency level: deep or expert levels add \
architecture and trade-offs, intermediate levels connect concepts to larger \
systems, basic levels stay with the fundamentals, practical levels focus on \
when and how to apply it.
"""


def _extraction_prompt(request: KnowledgeExtractionRequest) -> str:
    return (
        f"Job Title: {request.job_title}\n\n"
        f"Requirements:\n{request.requirements}\n\n"
        f"Job Description:\n{request.job_description}\n\n"
        "Extract the technical knowledge requirements."
    )


def _research_prompt(request: KnowledgeResearchRequest) -> str:
    return (
        f"Topic: {request.knowledge_item}\n"
        f"Proficiency level: {request.proficiency_level}\n\n"
        "Write the knowledge overview."
    )


def _require(values: dict[str, str]) -> None:
    details = [
        {"field": name, "message": f"{name} must not be empty"}
        for name, value in values.items()
        if not value or not value.strip()
    ]
    if details:
        raise ValidationError("; ".join(d["message"] for d in details), details)


def _check_extraction(text: str) -> str:
    if not text.strip():
        raise RetryableRemoteError("Empty response from the model")
    return text.strip()


def _check_research(text: str) -> str:
    text = text.strip()
    if not text:
        raise RetryableRemoteError("Empty response from the model")
    if len(text) < MIN_RESEARCH_LENGTH:
        raise RetryableRemoteError(f"Response too short ({len(text)} characters)")
    if not any(section in text for section in _RESEARCH_SECTIONS):
        logger.warning("Research response does not follow the expected format")
    return text


class KnowledgeService:
    def __init__(
        self,
        cache: CacheStore,
        generator: TextGenerator,
        retry_policy: RetryPolicy,
        expiry: timedelta = timedelta(days=60),
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._cache = cache
        self._generator = generator
        self._retry_policy = retry_policy
        self._expiry = expiry
        self._clock = clock
        self._sleep = sleep

    async def extract(self, request: KnowledgeExtractionRequest) -> KnowledgeExtractionResult:
        started = time.monotonic()
        _require(
            {
                "jobTitle": request.job_title,
                "requirements": request.requirements,
                "jobDescription": request.job_description,
            }
        )
        input_hash = extraction_input_hash(request.job_title, request.requirements, request.job_description)
        cache_key = extraction_cache_key(request.job_title, request.requirements, request.job_description)

        cached = await self._lookup(CacheType.EXTRACTION, cache_key, request.force_refresh)
        if cached is not None:
            return KnowledgeExtractionResult(
                extracted_knowledge=cached.response_content,
                from_cache=True,
                tokens_used=cached.tokens_used,
                response_time=_elapsed_ms(started),
            )

        generation = await self._generate(
            _extraction_prompt(request), EXTRACTION_SYSTEM, _check_extraction, "Knowledge extraction"
        )
        elapsed = _elapsed_ms(started)
        await self._persist(
            CacheType.EXTRACTION,
            cache_key,
            generation,
            elapsed,
            input_hash=input_hash,
            job_id=request.job_id,
        )
        return KnowledgeExtractionResult(
            extracted_knowledge=generation.text,
            from_cache=False,
            tokens_used=generation.tokens_used,
            response_time=elapsed,
        )

    async def research(self, request: KnowledgeResearchRequest) -> KnowledgeResearchResult:
        started = time.monotonic()
        _require({"knowledgeItem": request.knowledge_item, "proficiencyLevel": request.proficiency_level})
        cache_key = research_cache_key(request.knowledge_item, request.proficiency_level)

        cached = await self._lookup(CacheType.RESEARCH, cache_key, request.force_refresh)
        if cached is not None:
            return KnowledgeResearchResult(
                research_content=cached.response_content,
                from_cache=True,
                tokens_used=cached.tokens_used,
                response_time=_elapsed_ms(started),
            )

        generation = await self._generate(
            _research_prompt(request), RESEARCH_SYSTEM, _check_research, "Knowledge research"
        )
        elapsed = _elapsed_ms(started)
        await self._persist(
            CacheType.RESEARCH,
            cache_key,
            generation,
            elapsed,
            knowledge_item=request.knowledge_item,
            proficiency_level=request.proficiency_level,
        )
        return KnowledgeResearchResult(
            research_content=generation.text,
            from_cache=False,
            tokens_used=generation.tokens_used,
            response_time=elapsed,
        )

    async def _lookup(self, cache_type: CacheType, cache_key: str, force_refresh: bool) -> CacheEntry | None:
        if force_refresh:
            logger.info("Force refresh requested, skipping cache for key %s", cache_key)
            return None
        try:
            entry = await self._cache.find_fresh(cache_type, cache_key, self._clock())
        except StorageError as e:
            logger.error("Cache lookup failed, treating as miss: %s", e)
            return None
        logger.info("Cache %s for key %s", "hit" if entry else "miss", cache_key)
        return entry

    async def _generate(
        self,
        prompt: str,
        system: str,
        check: Callable[[str], str],
        context: str,
    ) -> Generation:
        async def attempt() -> Generation:
            generation = await self._generator.generate(prompt, system)
            return Generation(check(generation.text), generation.tokens_used)

        return await execute_with_retry(attempt, self._retry_policy, f"{context} API call", self._sleep)

    async def _persist(
        self,
        cache_type: CacheType,
        cache_key: str,
        generation: Generation,
        elapsed_ms: int,
        **extra: str | None,
    ) -> None:
        now = self._clock()
        entry = CacheEntry(
            cache_type=cache_type,
            cache_key=cache_key,
            response_content=generation.text,
            ai_model=self._generator.model_name,
            tokens_used=generation.tokens_used,
            response_time_ms=elapsed_ms,
            created_at=now,
            updated_at=now,
            expires_at=now + self._expiry,
            **extra,
        )
        try:
            await self._cache.upsert(entry)
        except StorageError as e:
            logger.error("Failed to save response to cache (key %s): %s", cache_key, e)
            return
        logger.info("Saved response to cache with key %s", cache_key)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
