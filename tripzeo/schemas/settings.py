"""Platform settings Pydantic schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class PlatformSettingResponse(BaseModel):
    key: str
    value: Decimal
    description: str | None
    version: int
    updated_at: datetime | None = None


class PlatformSettingUpdate(BaseModel):
    value: Decimal
    description: str | None = Field(None, max_length=500)
