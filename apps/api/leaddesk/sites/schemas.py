from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SiteCreate(BaseModel):
    url: str = Field(min_length=1)
    description: str | None = None
    department_id: UUID


class SiteUpdate(BaseModel):
    url: str | None = Field(default=None, min_length=1)
    description: str | None = None


class SiteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    url: str
    description: str
    token: str
    department_id: UUID
    created_at: datetime
    updated_at: datetime
