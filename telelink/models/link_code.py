"""Linking code models for the Telegram account linking flow."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["supplier", "transporter", "customer"]
CodeFailureReason = Literal["not_found", "expired", "already_used"]


class LinkingCode(BaseModel):
    """Core linking code model. One entry in the LinkCodeRegistry table."""

    code: str
    owner_id: str
    role: Role
    expires_at: datetime
    used: bool = False
    is_demo: bool = False


class CodeStatus(BaseModel):
    """Read-only view of a code, as reported by LinkCodeRegistry.inspect()."""

    model_config = {"populate_by_name": True}

    valid: bool
    reason: CodeFailureReason | None = None
    expires_at: datetime | None = Field(default=None, serialization_alias="expiresAt")
    expires_in: int | None = Field(default=None, serialization_alias="expiresIn")


class CreateLinkCodeRequest(BaseModel):
    """Request body for generating a new linking code."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    user_id: str = Field(alias="userId", min_length=1, max_length=200)
    user_name: str | None = Field(default=None, alias="userName", max_length=200)
    role: Role = "customer"


class LinkCodeResponse(BaseModel):
    """Public response returned after generating a linking code."""

    code: str
    expires_at: datetime = Field(serialization_alias="expiresAt")
    expires_in: int = Field(serialization_alias="expiresIn")
