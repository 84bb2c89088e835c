"""Pydantic schemas for throttle status reports."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ThrottleStatus(BaseModel):
    """Authoritative budget snapshot reported by the protected API.

    Accepts both snake_case names and the camelCase keys the API returns,
    so a ``throttleStatus`` block can be passed through unchanged. Range
    checks happen in the tracker so violations surface as InvalidRecord.
    """

    maximum_available: float = Field(
        ...,
        alias="maximumAvailable",
        description="Ceiling of the tenant's bucket.",
    )
    currently_available: float = Field(
        ...,
        alias="currentlyAvailable",
        description="Points left in the bucket right after the real call.",
    )
    restore_rate: float = Field(
        ...,
        alias="restoreRate",
        description="Points restored per second.",
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)
