"""Request schemas."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from wecarry.domains.requests.models import RequestKind, RequestSize, RequestVisibility


class LocationInput(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    country: Optional[str] = Field(default=None, min_length=2, max_length=2)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class RequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=4096)
    destination: LocationInput
    origin: Optional[LocationInput] = None
    size: RequestSize = RequestSize.SMALL
    kind: RequestKind = RequestKind.REQUEST
    visibility: RequestVisibility = RequestVisibility.ALL
    needed_after: Optional[dt.datetime] = None
    needed_before: Optional[dt.datetime] = None

    @model_validator(mode="after")
    def _check_window(self) -> "RequestCreate":
        if self.needed_after and self.needed_before and self.needed_after > self.needed_before:
            raise ValueError("needed_after must not be later than needed_before")
        return self
