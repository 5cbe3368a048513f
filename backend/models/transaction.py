"""Transaction model - a posted or pending movement on an account."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import utcnow


class Transaction(Base):
    """A transaction synced from the aggregator.

    Keyed by the aggregator's globally unique transaction id. ``amount`` is
    signed: positive for credits, negative for debits.
    """

    __tablename__ = "transactions"

    id = Column(String, primary_key=True)  # Aggregator transaction id
    account_id = Column(
        String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(18, 2), nullable=False)
    currency_code = Column(String(3), nullable=False)
    made_on = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=True)
    category = Column(String, nullable=True)
    mode = Column(String, nullable=True)  # "normal" | "fee" | "transfer"
    status = Column(String, nullable=True)  # "posted" | "pending"
    duplicated = Column(Boolean, default=False, nullable=False)
    balance_snapshot = Column(Numeric(18, 2), nullable=True)
    posting_date = Column(Date, nullable=True)
    merchant_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    account = relationship("Account", back_populates="transactions")
