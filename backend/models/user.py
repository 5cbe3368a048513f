"""User model - the application's tenant-of-record for banking data."""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class User(Base):
    """An application user identified by email.

    Owns every aggregator customer, bank connection, account, transaction
    and sync log entry. Deleting a user cascades customers -> connections
    -> accounts -> transactions, plus the user's sync logs.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    customers = relationship(
        "AggregatorCustomer", back_populates="user", cascade="all, delete"
    )
    sync_logs = relationship(
        "SyncLogEntry", back_populates="user", cascade="all, delete"
    )
    connections = relationship("BankConnection", viewonly=True)
    accounts = relationship("Account", viewonly=True)
