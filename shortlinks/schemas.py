"""Pydantic schemas for short link records and the HTTP API.

This module defines the backend-neutral records returned by every LinkStore
implementation as well as the request/response models used by the routes.

Schema Hierarchy
=================
::
    VisitDetail (Record)
    ├─ timestamp: datetime
    ├─ user_agent: str | None
    └─ referrer: str | None

    NewShortLink (Store input)
    ├─ original_url: str
    ├─ short_code: str
    └─ created_at: datetime

    ShortLink (Record)
    ├─ id: int
    ├─ original_url: str
    ├─ short_code: str
    ├─ created_at: datetime
    ├─ visits: int
    ├─ last_visited_at: datetime | None
    └─ visit_history: list[VisitDetail]

    LinkCreate (Input)
    └─ url: str (validated URL)

    LinkResponse / LinkStats (Output)
    └─ ShortLink fields + short_url (computed)

    DeleteResponse (Output)
    └─ deleted: int

    HealthResponse (Output)
    ├─ status: HealthStatus
    └─ store: HealthStatus

How to Use
===========
**Step 1 — Convert an ORM row**::
    link = ShortLink.model_validate(row)

**Step 2 — Serialize for the API**::
    return LinkResponse.from_link(link, settings.BASE_URL)

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- ShortLink and VisitDetail are immutable once built.
- Records are configured for ORM attribute mapping.
"""

import datetime

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shortlinks.enums import HealthStatus

__all__ = [
    "is_valid_url",
    "VisitDetail",
    "NewShortLink",
    "ShortLink",
    "LinkCreate",
    "LinkResponse",
    "LinkStats",
    "DeleteResponse",
    "HealthResponse",
]


def is_valid_url(value: str) -> bool:
    """Return True when ``value`` is an absolute URL with a scheme and host.

    Bare query keys (``?flag``) and single-label hosts (``localhost``) are
    accepted.
    """
    return isinstance(value, str) and bool(validators.url(value, strict_query=False, simple_host=True))


def _as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    # SQLite hands timestamps back without tzinfo; everything is written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


class VisitDetail(BaseModel):
    timestamp: datetime.datetime
    user_agent: str | None = None
    referrer: str | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime.datetime) -> datetime.datetime:
        return _as_utc(v)


class NewShortLink(BaseModel):
    """A link that has been allocated a code but not yet persisted."""

    original_url: str
    short_code: str
    created_at: datetime.datetime

    model_config = ConfigDict(frozen=True)


class ShortLink(BaseModel):
    id: int
    original_url: str
    short_code: str
    created_at: datetime.datetime
    visits: int = Field(0, ge=0)
    last_visited_at: datetime.datetime | None = None
    visit_history: list[VisitDetail] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("created_at", "last_visited_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return _as_utc(v)


class LinkCreate(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not is_valid_url(v):
            raise ValueError("Invalid URL provided")
        return v


class LinkResponse(BaseModel):
    id: int
    short_code: str
    original_url: str
    short_url: str
    visits: int
    created_at: datetime.datetime
    last_visited_at: datetime.datetime | None

    @classmethod
    def from_link(cls, link: ShortLink, base_url: str) -> "LinkResponse":
        return cls(
            id=link.id,
            short_code=link.short_code,
            original_url=link.original_url,
            short_url=f"{base_url}/{link.short_code}",
            visits=link.visits,
            created_at=link.created_at,
            last_visited_at=link.last_visited_at,
        )


class LinkStats(LinkResponse):
    visit_history: list[VisitDetail]

    @classmethod
    def from_link(cls, link: ShortLink, base_url: str) -> "LinkStats":
        return cls(
            id=link.id,
            short_code=link.short_code,
            original_url=link.original_url,
            short_url=f"{base_url}/{link.short_code}",
            visits=link.visits,
            created_at=link.created_at,
            last_visited_at=link.last_visited_at,
            visit_history=link.visit_history,
        )


class DeleteResponse(BaseModel):
    deleted: int = Field(..., ge=0, description="Number of links removed (0 or 1).")


class HealthResponse(BaseModel):
    status: HealthStatus
    store: HealthStatus
