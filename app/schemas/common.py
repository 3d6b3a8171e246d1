from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OTPResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    user_id: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")


class HealthStatus(BaseModel):
    status: str
    database: bool
