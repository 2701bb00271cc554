from typing import Dict
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated actor, as issued by the identity provider.
    id/name are what audit trail entries and status logs record.
    """

    id: UUID
    tenant_id: UUID
    role: str
    name: str = "Unknown"
    permissions: Dict[str, Dict[str, bool]] = {}
