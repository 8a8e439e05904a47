"""Pydantic schemas for rate limit responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

TOO_MANY_REQUESTS_MESSAGE = "Too many requests. Please try again later."


class RateLimitErrorResponse(BaseModel):
    """Body returned with HTTP 429 when a client exhausts its window."""

    error: str = Field(
        TOO_MANY_REQUESTS_MESSAGE,
        description="Human-readable reason for the rejection.",
    )
    retry_after: int = Field(
        ...,
        alias="retryAfter",
        ge=0,
        description="Seconds until the client's current window resets.",
    )

    model_config = ConfigDict(populate_by_name=True)
