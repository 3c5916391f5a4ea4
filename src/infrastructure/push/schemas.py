"""Pydantic schema for push channel envelopes."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.entities.push import PushMessage


class PushEnvelope(BaseModel):
    """``{type, data, timestamp}`` as sent on the push channel."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None

    @field_validator("data", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def to_message(self) -> PushMessage:
        return PushMessage(type=self.type, data=self.data, timestamp=self.timestamp)


def parse_push_message(raw: str | bytes) -> PushMessage:
    """Decode one envelope; raises ``pydantic.ValidationError`` when malformed."""
    return PushEnvelope.model_validate_json(raw).to_message()
