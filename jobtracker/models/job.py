from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import AnyHttpUrl, Field, field_validator, model_validator

from jobtracker.models.base import CamelModel


class JobStatus(str, Enum):
    PENDING = "Pending"
    REJECT = "Reject"
    INTERVIEW = "Interview"
    HIRED = "Hired"


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class Job(CamelModel):
    id: str
    job_title: str
    company_name: str
    application_link: str
    company_link: str | None = None
    requirements: str = ""
    job_description: str = ""
    status: JobStatus = JobStatus.PENDING
    notes: str = ""
    applied_date: date
    created_at: datetime
    updated_at: datetime


class JobCreate(CamelModel):
    job_title: str = Field(min_length=1, max_length=200)
    company_name: str = Field(min_length=1, max_length=200)
    application_link: AnyHttpUrl
    company_link: AnyHttpUrl | None = None
    requirements: str = Field(min_length=1)
    job_description: str = Field(min_length=1)
    status: JobStatus
    notes: str = ""
    applied_date: date

    @field_validator("company_link", mode="before")
    @classmethod
    def blank_company_link(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def to_record(self) -> dict[str, Any]:
        """Plain values ready to be stored (URLs as strings, dates as ISO strings)."""
        return self.model_dump(mode="json")


class JobUpdate(CamelModel):
    """Partial update. Only fields present in the request are applied."""

    job_title: str | None = Field(None, min_length=1, max_length=200)
    company_name: str | None = Field(None, min_length=1, max_length=200)
    application_link: AnyHttpUrl | None = None
    company_link: AnyHttpUrl | None = None
    requirements: str | None = Field(None, min_length=1)
    job_description: str | None = Field(None, min_length=1)
    status: JobStatus | None = None
    notes: str | None = None
    applied_date: date | None = None

    @field_validator("company_link", mode="before")
    @classmethod
    def blank_company_link(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @model_validator(mode="after")
    def not_empty(self) -> JobUpdate:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_unset=True)
        # company_link may be cleared; a null for any other field means "leave as is"
        return {k: v for k, v in data.items() if v is not None or k == "company_link"}
