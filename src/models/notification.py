from sqlalchemy import Boolean, Column, String
from .base import Base


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, index=True)
    recipient_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    type = Column(String, nullable=False)  # 'access_request', 'general', ...
    related_id = Column(String, index=True, nullable=True)
    class_id = Column(String, nullable=True)
    sender_id = Column(String, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False)
