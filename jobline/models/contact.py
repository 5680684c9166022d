"""Pydantic model for voice messages left on the contact line."""

from __future__ import annotations

from datetime import datetime

from jobline.models.base import StoredModel


class ContactMessage(StoredModel):
    id: str = ""
    phone: str
    message_ref: str
    created_at: datetime
    is_read: bool = False
    source: str = "phone"
