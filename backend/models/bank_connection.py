"""BankConnection model - one authorized link to a financial institution."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import utcnow


class BankConnection(Base):
    """A Salt Edge connection, keyed by the aggregator's connection id.

    ``status`` is stored exactly as the aggregator reported it; only
    ``active`` connections are eligible for data sync.
    """

    __tablename__ = "bank_connections"

    id = Column(String, primary_key=True)  # Aggregator connection id
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(
        String,
        ForeignKey("aggregator_customers.customer_id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_code = Column(String, nullable=True)
    provider_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    last_success_at = Column(DateTime, nullable=True)
    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    customer = relationship("AggregatorCustomer", back_populates="connections")
    accounts = relationship(
        "Account", back_populates="connection", cascade="all, delete"
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"
