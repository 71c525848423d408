"""Builds the store handles and services, and hands them to route handlers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

import duckdb
from fastapi import Request

from jobtracker.config import Settings
from jobtracker.db import connect
from jobtracker.services.csv_service import CsvService
from jobtracker.services.index_service import StatusIndex
from jobtracker.services.job_service import JobService, utcnow
from jobtracker.services.knowledge_service import KnowledgeService
from jobtracker.services.llm_service import LLMService, TextGenerator
from jobtracker.services.retry import RetryPolicy
from jobtracker.stores.cache_store import DuckDBCacheStore
from jobtracker.stores.job_store import DuckDBJobStore, JobStore, KeyValueJobStore
from jobtracker.stores.kv_store import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    con: duckdb.DuckDBPyConnection
    kv: KeyValueStore
    cache: DuckDBCacheStore
    jobs: JobService
    knowledge: KnowledgeService
    csv: CsvService

    async def close(self) -> None:
        await self.kv.close()
        self.con.close()


def _build_kv(settings: Settings) -> KeyValueStore:
    if settings.kv_backend == "memory":
        logger.warning("Using the in-process key-value store; the status index is not persisted")
        return MemoryKeyValueStore()
    return RedisKeyValueStore.from_settings(
        settings.redis_host, settings.redis_port, settings.redis_password, settings.redis_db
    )


async def build_services(
    settings: Settings,
    generator: TextGenerator | None = None,
    db_path: str | None = None,
) -> Services:
    con = connect(db_path or settings.db_path)
    kv = _build_kv(settings)
    store: JobStore
    if settings.job_backend == "redis":
        store = KeyValueJobStore(kv)
    else:
        store = DuckDBJobStore(con)
    logger.info("Job records: %s backend, status index: %s", settings.job_backend, settings.kv_backend)

    if generator is None:
        llm = LLMService(settings)
        await llm.initialize()
        generator = llm

    jobs = JobService(store, StatusIndex(kv))
    cache = DuckDBCacheStore(con)
    knowledge = KnowledgeService(
        cache,
        generator,
        RetryPolicy.from_settings(settings),
        expiry=timedelta(days=settings.cache_expiry_days),
        clock=utcnow,
    )
    return Services(
        settings=settings,
        con=con,
        kv=kv,
        cache=cache,
        jobs=jobs,
        knowledge=knowledge,
        csv=CsvService(jobs),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_job_service(request: Request) -> JobService:
    return get_services(request).jobs


def get_knowledge_service(request: Request) -> KnowledgeService:
    return get_services(request).knowledge


def get_csv_service(request: Request) -> CsvService:
    return get_services(request).csv
