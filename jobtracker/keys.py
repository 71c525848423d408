"""Key derivation for job records, the status index and the AI response cache.

Key patterns:
    job:{id}                      one job record (key-value job backend)
    jobs:all                      set of every job id
    jobs:status:{status}          set of job ids currently in ``status``
    extraction:{sha256}           knowledge-extraction cache entry
    research:{item}:{level}       knowledge-research cache entry
"""
from __future__ import annotations

import hashlib
import re

from jobtracker.models.job import JobStatus

JOB_KEY_PREFIX = "job:"
EXTRACTION_PREFIX = "extraction:"
RESEARCH_PREFIX = "research:"

# Joins the extraction fields; not expected in free text.
FIELD_SEPARATOR = "\x1f"

_UUID_RE = re.compile(
    r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$", re.IGNORECASE
)


def job_key(job_id: str) -> str:
    return f"{JOB_KEY_PREFIX}{job_id}"


def job_id_from_key(key: str) -> str | None:
    """Recover the job id from a ``job:{id}`` key, or None if the key is malformed."""
    if not key.startswith(JOB_KEY_PREFIX):
        return None
    job_id = key[len(JOB_KEY_PREFIX):]
    return job_id or None


def is_valid_job_key(key: str) -> bool:
    job_id = job_id_from_key(key)
    return job_id is not None and bool(_UUID_RE.match(job_id))


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def all_jobs_set_key() -> str:
    return "jobs:all"


def status_set_key(status: JobStatus | str) -> str:
    return f"jobs:status:{JobStatus(status).value}"


def all_status_set_keys() -> list[str]:
    return [status_set_key(status) for status in JobStatus]


def extraction_input_hash(job_title: str, requirements: str, job_description: str) -> str:
    content = FIELD_SEPARATOR.join((job_title, requirements, job_description))
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def extraction_cache_key(job_title: str, requirements: str, job_description: str) -> str:
    return EXTRACTION_PREFIX + extraction_input_hash(job_title, requirements, job_description)


def research_cache_key(knowledge_item: str, proficiency_level: str) -> str:
    # Not injective: an item or level containing ":" can share a key with another pair.
    item = knowledge_item.strip().lower()
    level = proficiency_level.strip().lower()
    return f"{RESEARCH_PREFIX}{item}:{level}"
