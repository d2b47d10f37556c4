"""Shared Pydantic base models and utilities for the wire contract."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HealthSyncBase(BaseModel):
    """Base model for all HealthSync schemas.

    Fields are snake_case in Python and camelCase on the wire; either form is
    accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ResponseEnvelope(HealthSyncBase):
    success: bool = True
    timestamp: datetime = Field(default_factory=utc_now)


# ---------- Pagination ----------


class Pagination(HealthSyncBase):
    total: int
    limit: int
    offset: int
    has_more: bool
