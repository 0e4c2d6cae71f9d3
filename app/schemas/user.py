"""
Portal user views for the admin listing.
"""
from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional
from datetime import datetime


class PortalUserOut(BaseModel):
    """password is never included: only fields declared here are exposed."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    user_type: str
    is_verified: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)
