"""
Base Schemas
============

Common schema patterns shared by the report API.
"""

from typing import TypeVar, Generic, List, Optional

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base Pydantic schema with common configuration.

    All API schemas should inherit from this base.
    """

    model_config = ConfigDict(
        # Read straight off SQLAlchemy rows
        from_attributes=True,
        validate_default=True,
        use_enum_values=True,
        str_strip_whitespace=True,
    )


T = TypeVar("T")


class PaginatedResponse(BaseSchema, Generic[T]):
    """
    Generic paginated response wrapper.

    Attributes:
        items: List of items for this page
        total: Total number of items
        page: Current page number (1-indexed)
        page_size: Number of items per page
        pages: Total number of pages
    """

    items: List[T]
    total: int
    page: int
    page_size: int
    pages: int

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int,
        page_size: int,
    ) -> "PaginatedResponse[T]":
        pages = (total + page_size - 1) // page_size if page_size > 0 else 0
        return cls(items=items, total=total, page=page, page_size=page_size, pages=pages)


class ErrorResponse(BaseSchema):
    """Body of every error returned by the report API."""

    detail: str
    code: Optional[str] = None
