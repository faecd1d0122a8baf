from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ProcessMessageDTO(BaseModel):
    business_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    message: str
    phone: str | None = None

    @field_validator("message")
    @classmethod
    def strip_message(cls, value: str) -> str:
        return value.strip()
