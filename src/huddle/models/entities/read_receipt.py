"""ReadReceipt - Per-user read marker keyed by (message_id, user_id)."""

from datetime import datetime

from pydantic import BaseModel, Field

from ...utils.date_utils import utc_now


class ReadReceipt(BaseModel):
    """
    Created on first read, ``read_at`` overwritten on every later read.

    Never deleted.
    """

    message_id: str
    user_id: str
    read_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, str]:
        return (self.message_id, self.user_id)
