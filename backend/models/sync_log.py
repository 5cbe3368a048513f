"""SyncLogEntry model - audit record of one connection lifecycle step or sync."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class SyncLogEntry(Base):
    """An append-only log entry for a user's bank connection activity.

    ``action`` is a free-form tag (``webhook_success``, ``manual_sync``, ...).
    Entries are never updated; they disappear only when the owning user is
    deleted.
    """

    __tablename__ = "sync_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    connection_id = Column(String, nullable=True)
    action = Column(String, nullable=False)
    status = Column(String, nullable=False)  # "success" | "error" | "pending"
    message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="sync_logs")
