"""
Identity & tenant context.

The authenticated principal travels explicitly through every call as a
TenantContext; there is no process-wide "current user".
"""
from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    DELEGADO = "delegado"
    PRESIDENTE = "presidente"
    SECRETARIA = "secretaria"


@dataclass(frozen=True)
class TenantContext:
    """
    Principal resolved by the auth layer.

    organization_id is the isolation boundary: every query issued on behalf of
    this context is filtered by it.
    """
    user_id: int
    organization_id: int
    role: Role

    @classmethod
    def of(cls, user_id: int, organization_id: int, role: str | Role) -> "TenantContext":
        return cls(user_id=user_id, organization_id=organization_id, role=Role(role))
