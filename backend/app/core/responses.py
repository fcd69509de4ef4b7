"""JSON envelopes shared by every endpoint.

Success bodies are ``{"data": ...}``; collections add ``"meta"`` with page
information; failures are ``{"error": {"code", "message", "details"}}``.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    total: int
    page: int
    per_page: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        """ceil(total / per_page); an empty collection has no pages."""
        return -(-self.total // self.per_page) if self.total else 0


class DataResponse(BaseModel, Generic[T]):
    """A single resource (or ``None``) under ``data``."""

    data: T


class ListResponse(BaseModel, Generic[T]):
    """One page of a collection; build ``meta`` with ``PageRequest.meta(total)``."""

    data: list[T]
    meta: PaginationMeta


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Body written by the exception handlers in main."""

    error: ErrorDetail
