"""SQLAlchemy ORM models."""

from .account import Account
from .aggregator_customer import AggregatorCustomer
from .bank_connection import BankConnection
from .sync_log import SyncLogEntry
from .transaction import Transaction
from .user import User
from .utils import generate_uuid

__all__ = ["Account", "AggregatorCustomer", "BankConnection", "SyncLogEntry", "Transaction", "User", "generate_uuid"]
