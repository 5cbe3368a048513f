"""Account model - a financial account under a bank connection."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import utcnow


class Account(Base):
    """A bank account synced from the aggregator.

    The primary key is the aggregator's account id, so every sync upserts
    onto the same row (last write wins).
    """

    __tablename__ = "accounts"

    id = Column(String, primary_key=True)  # Aggregator account id
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    connection_id = Column(
        String, ForeignKey("bank_connections.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String, nullable=False)
    nature = Column(String, nullable=True)  # e.g., "account", "savings", "card"
    balance = Column(Numeric(18, 2), nullable=False, default=0)
    currency_code = Column(String(3), nullable=False)
    iban = Column(String, nullable=True)
    account_number = Column(String, nullable=True)
    sort_code = Column(String, nullable=True)
    swift_code = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", viewonly=True)
    connection = relationship("BankConnection", back_populates="accounts")
    transactions = relationship(
        "Transaction", back_populates="account", cascade="all, delete"
    )
