"""
Connection context for every lifecycle operation.

Design pattern for connection context that can be constructed from:
- Verified token claims (sub, role, name)
- Direct instantiation for testing/CLI

Key Design Pattern
- ConnectionContext is passed to each operation, not stored in services
- Identity and role are established once at connection time, then trusted
- Clean separation: context (who) vs services (what)
"""

from enum import Enum
from typing import Any
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


class ConnectionContext(BaseModel):
    """
    Authenticated identity of one live connection.

    Example:
        # From verified token claims
        viewer = ConnectionContext.from_claims({"sub": "u1", "role": "admin"})

        # Direct construction for testing
        viewer = ConnectionContext(user_id="u1", display_name="Alice")
    """

    model_config = ConfigDict(frozen=True)

    connection_id: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Identifier of the live connection (one user may hold many)",
    )
    user_id: str = Field(..., min_length=1, description="Authenticated user id")
    role: Role = Field(default=Role.MEMBER, description="Viewer role")
    display_name: str | None = Field(
        default=None, description="Display name echoed in broadcast payloads"
    )

    @property
    def is_elevated(self) -> bool:
        """Elevated viewers see original content of every message."""
        return self.role == Role.ADMIN

    @property
    def name(self) -> str:
        return self.display_name or self.user_id

    @classmethod
    def from_claims(
        cls, claims: dict[str, Any], connection_id: str | None = None
    ) -> "ConnectionContext":
        """
        Construct a context from verified token claims.

        Reads:
        - sub / user_id: user identifier (required)
        - role: "admin" or "member" (anything else is treated as member)
        - name / username: display name
        """
        normalized = {k.lower(): v for k, v in claims.items()}
        user_id = normalized.get("sub") or normalized.get("user_id")
        if not user_id:
            raise ValueError("claims carry no subject")

        raw_role = str(normalized.get("role", Role.MEMBER.value)).lower()
        try:
            role = Role(raw_role)
        except ValueError:
            logger.debug(f"Unknown role '{raw_role}' for {user_id}, using member")
            role = Role.MEMBER

        values: dict[str, Any] = {
            "user_id": str(user_id),
            "role": role,
            "display_name": normalized.get("name") or normalized.get("username"),
        }
        if connection_id:
            values["connection_id"] = connection_id
        return cls(**values)
