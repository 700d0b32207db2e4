"""Pydantic schemas for the time clock API (camelCase on the wire)."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ClockInRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    subject_id: str = Field(min_length=1)
    device_info: str = ""
    subject_name: Optional[str] = None


class SessionOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    session_id: str
    subject_id: str
    subject_name: Optional[str] = None
    clock_in: str
    clock_out: Optional[str] = None
    device_info: str = ""
