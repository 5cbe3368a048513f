"""AggregatorCustomer model - local record of a remote Salt Edge customer."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class AggregatorCustomer(Base):
    """The aggregator-side identity created (lazily) for a user.

    ``customer_id`` is the opaque id assigned by the aggregator and is what
    connections reference; ``identifier`` is the caller-chosen string the
    customer was created with (it may carry a timestamp suffix after a
    duplicate-customer recovery).
    """

    __tablename__ = "aggregator_customers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(String, unique=True, index=True, nullable=False)
    identifier = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")  # "pending" | "active"
    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="customers")
    connections = relationship(
        "BankConnection", back_populates="customer", cascade="all, delete"
    )
