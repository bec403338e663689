"""Notification schema definitions."""

from typing import Optional

from pydantic import BaseModel


class Notification(BaseModel):
    id: str
    recipient_id: str
    title: str
    message: str
    type: str
    related_id: Optional[str] = None
    class_id: Optional[str] = None
    sender_id: Optional[str] = None
    is_read: bool = False
    created_at: str
