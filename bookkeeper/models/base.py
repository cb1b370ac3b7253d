"""
Shared base models.

Every stored entity is a flat record owned by one user and identified by
a UUID. Relationships are plain id fields (company_id, payee_id, ...);
there is no nesting between stored entities.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """Common identity and timestamps for stored entities."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record identifier"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner of the record"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was created (UTC)"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was last modified (UTC)"
    )


class Address(BaseModel):
    """Postal address embedded in company and payee records."""
    model_config = ConfigDict(str_strip_whitespace=True)

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "USA"
