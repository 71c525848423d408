from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from jobtracker.models.base import CamelModel

T = TypeVar("T")


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total_items: int) -> Pagination:
        total_pages = math.ceil(total_items / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total_items,
            items_per_page=limit,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )


class ErrorDetail(BaseModel):
    field: str
    message: str


class ApiResponse(CamelModel, Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None
    message: str | None = None
    pagination: Pagination | None = None
    details: list[ErrorDetail] | None = None


class ImportRowError(BaseModel):
    row: int
    error: str


class ImportResult(BaseModel):
    success: bool = True
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)


class IndexRebuildReport(CamelModel):
    jobs_scanned: int = 0
    added: int = 0
    removed: int = 0
