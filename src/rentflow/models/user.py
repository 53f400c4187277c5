"""User model."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from rentflow.models.enums import UserRole


class User(BaseModel):
    """A platform user (tenant, prospective tenant or property manager)."""

    user_id: UUID
    email: str
    full_name: Optional[str] = None
    role: UserRole = UserRole.PROSPECTIVE_TENANT
    created_at: datetime
    updated_at: datetime
