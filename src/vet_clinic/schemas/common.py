"""
Shared Pydantic schemas: the API envelope and pagination wrapper.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import VetClinicException, create_error_response

T = TypeVar("T")


class ApiResponse(BaseModel):
    """Uniform response envelope returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field("", description="Human-readable outcome")
    data: Optional[Any] = Field(None, description="Operation payload")
    error: Optional[Dict[str, Any]] = Field(None, description="Error description")

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> "ApiResponse":
        """Build a success envelope."""
        return cls(success=True, message=message, data=data)

    @classmethod
    def from_exception(cls, exception: VetClinicException) -> "ApiResponse":
        """Build a failure envelope from a package exception."""
        return cls(**create_error_response(exception))


class Page(BaseModel, Generic[T]):
    """One page of a paginated listing."""

    items: List[T] = Field(default_factory=list)
    page: int = Field(1, ge=1)
    page_size: int = Field(..., gt=0)
    total: int = Field(0, ge=0)

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages
