"""page / per_page query parameters for collection endpoints.

page starts at 1; per_page defaults to 20 and is capped at 100. Out-of-range
values fail request validation (400).
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Query

from app.core.responses import PaginationMeta

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class PageRequest:
    page: int
    per_page: int

    @property
    def offset(self) -> int:
        """Rows to skip before this page."""
        return (self.page - 1) * self.per_page

    def meta(self, total: int) -> PaginationMeta:
        """Envelope metadata for this page given the total row count."""
        return PaginationMeta(total=total, page=self.page, per_page=self.per_page)


def page_request(
    page: Annotated[int, Query(ge=1, description="Page number (1-indexed)")] = 1,
    per_page: Annotated[
        int, Query(ge=1, le=MAX_PER_PAGE, description="Items per page")
    ] = DEFAULT_PER_PAGE,
) -> PageRequest:
    return PageRequest(page=page, per_page=per_page)


# Endpoint parameter type: ``pagination: Pagination``
Pagination = Annotated[PageRequest, Depends(page_request)]
