"""
Error response models for the request pipeline.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorItem(BaseModel):
    """A single field-level error in an error response."""

    model_config = ConfigDict(frozen=True)

    item: str = Field(..., description="Name or path of the offending field")
    message: str = Field(..., description="Why the field was rejected")


class ErrorResponseBody(BaseModel):
    """Standard error response body.

    Every error leaving the framework has this shape. ``errorItems`` is only
    present for validation failures.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "message": "Validation failed",
                "errorCode": "INVALID_REQUEST",
                "errorItems": [
                    {"item": "email", "message": "invalid"}
                ],
            }
        },
    )

    message: str = Field(
        ...,
        description="Human-readable error message describing what went wrong"
    )

    error_code: str = Field(
        ...,
        alias="errorCode",
        description="Machine-readable error code"
    )

    error_items: Optional[List[ErrorItem]] = Field(
        None,
        alias="errorItems",
        description="Field-level validation errors"
    )

    def model_dump(self, **kwargs):
        """Dump with wire names and without empty optional fields by default."""
        kwargs.setdefault("by_alias", True)
        kwargs.setdefault("exclude_none", True)
        return super().model_dump(**kwargs)

    def model_dump_json(self, **kwargs):
        """Serialize with wire names and without empty optional fields by default."""
        kwargs.setdefault("by_alias", True)
        kwargs.setdefault("exclude_none", True)
        return super().model_dump_json(**kwargs)


MASKED_ERROR_BODY = ErrorResponseBody(
    message="An unexpected error occurred",
    errorCode="INTERNAL_ERROR",
)


class MappedErrorResponse(BaseModel):
    """Transport-level error response: a status code and a body."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: ErrorResponseBody

    def to_json(self) -> str:
        """Serialize the body to JSON."""
        return self.body.model_dump_json()
