"""Request bodies accepted by the HTTP API."""

import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from shared.enums import AudienceType, Channel

E164_PATTERN = r"^\+[1-9]\d{1,14}$"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DispatchRequest(_CamelModel):
    message_id: UUID = Field(alias="messageId")


class IssueCodeRequest(_CamelModel):
    phone_number: str = Field(alias="phoneNumber", pattern=E164_PATTERN)


class ValidateCodeRequest(_CamelModel):
    code: str = Field(min_length=1, max_length=16)


class CreateMessageRequest(_CamelModel):
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    link: str | None = None
    audience_type: AudienceType = Field(alias="audienceType")
    audience_filter: dict[str, Any] | None = Field(default=None, alias="audienceFilter")
    channels: list[Channel] = Field(min_length=1)
    # Accepted and stored; nothing acts on them.
    scheduled_at: datetime.datetime | None = Field(default=None, alias="scheduledAt")
    recurrence: dict[str, Any] | None = None


class RegisterPushTokenRequest(_CamelModel):
    token: str = Field(min_length=1, max_length=4096)
