"""Shared fakes and builders for the test suite."""
from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

from jobtracker.errors import StorageError
from jobtracker.models.job import Job, JobCreate, JobStatus
from jobtracker.services.llm_service import Generation
from jobtracker.stores.kv_store import MemoryKeyValueStore

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

LONG_RESEARCH = (
    "**Core Concepts**\nDocker packages applications into portable containers.\n\n"
    "**Essential Knowledge**\n- Images and layers\n- Containers and volumes\n\n"
    "**Practical Application**\n- Reproducible builds and deployments\n"
)


class FakeClock:
    """Manually advanced clock; every call returns the current value."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGenerator:
    """Scripted text generator. Each call consumes the next response or raises it."""

    model_name = "fake-model"

    def __init__(self, *responses: str | Exception, tokens_used: int | None = 42) -> None:
        self._responses = list(responses)
        self.tokens_used = tokens_used
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, system: str = "") -> Generation:
        self.calls.append((prompt, system))
        if not self._responses:
            raise AssertionError("FakeGenerator ran out of scripted responses")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return Generation(response, self.tokens_used)


class FlakyKeyValueStore(MemoryKeyValueStore):
    """MemoryKeyValueStore whose named operations raise StorageError on demand."""

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise StorageError(f"induced {operation} failure")

    async def add_to_set(self, set_key: str, member: str) -> int:
        self._check("add_to_set")
        return await super().add_to_set(set_key, member)

    async def remove_from_set(self, set_key: str, member: str) -> int:
        self._check("remove_from_set")
        return await super().remove_from_set(set_key, member)

    async def members_of(self, set_key: str) -> set[str]:
        self._check("members_of")
        return await super().members_of(set_key)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def job_payload(**overrides) -> dict:
    """A valid create-job body, camelCase as the HTTP API receives it."""
    payload = {
        "jobTitle": "Backend Engineer",
        "companyName": "Acme",
        "applicationLink": "https://acme.example.com/careers/42",
        "companyLink": "https://acme.example.com/about",
        "requirements": "Python, PostgreSQL, Docker",
        "jobDescription": "Build and run the order pipeline.",
        "status": "Pending",
        "notes": "",
        "appliedDate": "2025-02-28",
    }
    payload.update(overrides)
    return payload


def job_create(status: JobStatus = JobStatus.PENDING, **overrides) -> JobCreate:
    return JobCreate.model_validate(job_payload(status=status.value, **overrides))


def make_job(offset_minutes: int = 0, **overrides) -> Job:
    """A stored-shape Job created ``offset_minutes`` after T0."""
    created = T0 + timedelta(minutes=offset_minutes)
    data = {
        "id": str(uuid.uuid4()),
        "job_title": "Data Engineer",
        "company_name": "Initech",
        "application_link": "https://initech.example.com/jobs/7",
        "requirements": "SQL",
        "job_description": "Pipelines",
        "status": JobStatus.PENDING,
        "applied_date": date(2025, 2, 1),
        "created_at": created,
        "updated_at": created,
    }
    data.update(overrides)
    return Job.model_validate(data)
