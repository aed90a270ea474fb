"""
Base schemas and mixins for all models.
"""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class TimestampMixin(BaseModel):
    """Add timestamps to response models."""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(BaseModel):
    """Pagination block returned alongside list data."""
    page: int
    page_size: int
    total: int
    total_pages: int

    @classmethod
    def create(cls, page: int, page_size: int, total: int) -> "Pagination":
        """Build pagination metadata from a total row count."""
        total_pages = (total + page_size - 1) // page_size  # Ceiling division
        return cls(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages
        )


def page_range(page: int, page_size: int) -> tuple[int, int]:
    """Inclusive (start, end) row offsets for a Supabase .range() call."""
    offset = (page - 1) * page_size
    return offset, offset + page_size - 1


def ilike_any(columns: tuple[str, ...], search: str) -> str:
    """
    PostgREST or() expression matching search as a substring of any column.

    The pattern is double-quoted so commas, dots and parentheses in user
    input stay part of the value.

    Example:
        ilike_any(("a", "b"), 'x,y') -> 'a.ilike."%x,y%",b.ilike."%x,y%"'
    """
    term = search.strip().replace("\\", "\\\\").replace('"', '\\"')
    return ",".join(f'{col}.ilike."%{term}%"' for col in columns)
