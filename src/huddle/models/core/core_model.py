"""
CoreModel - Base model for all persisted Huddle entities.

All durable entities (Messages, Conversations, Reactions, ReadReceipts)
inherit from CoreModel, which provides:
- Identity (id, string, generated per model type)
- Temporal tracking (created_at, updated_at), timezone-aware UTC
"""

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ...utils.date_utils import utc_now


def new_id(prefix: str) -> str:
    """Generate a prefixed identifier (e.g. ``msg_5f2c...``)."""
    return f"{prefix}_{uuid4().hex}"


class CoreModel(BaseModel):
    """
    Base model for all Huddle entities.

    Note: ID generation is handled per model type, not by CoreModel.
    Each entity model defines an ``id`` default with its own prefix.
    """

    model_config = ConfigDict(validate_assignment=True)

    created_at: datetime = Field(
        default_factory=utc_now, description="Entity creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=utc_now, description="Last update timestamp"
    )
