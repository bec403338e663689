"""Access request (class invitation) database model.

Requests are correlated with roster rows by (class_id, student_email); there is
no foreign key between the two tables and no uniqueness constraint on the pair.

Every UPDATE and DELETE is guarded by ``version_id``: a write based on a stale
read matches no row and SQLAlchemy raises ``StaleDataError`` instead of
overwriting a decision made elsewhere.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from .base import Base


class AccessRequestModel(Base):
    __tablename__ = "access_requests"

    id = Column(String, primary_key=True, index=True)
    class_id = Column(String, ForeignKey("classes.id", ondelete="CASCADE"), index=True, nullable=False)
    lecturer_id = Column(String, nullable=False)
    student_id = Column(String, index=True, nullable=True)
    student_email = Column(String, index=True, nullable=False)
    status = Column(String, index=True, nullable=False, default="pending")  # pending/accepted/rejected
    sent_at = Column(String, nullable=True)
    responded_at = Column(String, nullable=True)
    invitation_email_sent = Column(Boolean, nullable=False, default=False)
    invitation_email_sent_at = Column(String, nullable=True)
    version_id = Column(Integer, nullable=False)

    class_ = relationship("ClassModel", back_populates="access_requests")

    __mapper_args__ = {"version_id_col": version_id}
