"""
Shared schema pieces.

Dependencies: pydantic
System role: Common API contracts
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes field names as camelCase for the viewer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    """Body of every error response (wrapped in FastAPI's "detail")."""

    error: str = Field(description="Machine-readable error kind")
    message: str = Field(description="Human-readable message")
    retryable: bool = Field(description="Whether the viewer should offer a retry")
