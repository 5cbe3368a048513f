"""Test fixtures and sample data."""
import pytest
from sqlalchemy.orm import Session

from models import AggregatorCustomer, BankConnection, User
from tests.fixtures.mocks import TEST_CONNECTION_ID, TEST_CUSTOMER_ID, TEST_EMAIL, TEST_IDENTIFIER


def create_user_with_connection(
    db: Session,
    email: str = TEST_EMAIL,
    customer_id: str = TEST_CUSTOMER_ID,
    connection_id: str | None = TEST_CONNECTION_ID,
    status: str = "active",
) -> User:
    """Create a user, its aggregator customer and (optionally) one connection.

    Args:
        db: Database session
        email: User email
        customer_id: Remote customer id recorded for the user
        connection_id: Remote connection id, or None to skip the connection
        status: Stored connection status

    Returns:
        The created User (committed)
    """
    user = User(email=email)
    db.add(user)
    db.flush()
    db.add(
        AggregatorCustomer(
            user_id=user.id,
            customer_id=customer_id,
            identifier=TEST_IDENTIFIER if email == TEST_EMAIL else f"finsight_{email}",
        )
    )
    db.flush()
    if connection_id:
        db.add(
            BankConnection(
                id=connection_id,
                user_id=user.id,
                customer_id=customer_id,
                provider_code="fake_demobank_xf",
                provider_name="Fake Demo Bank",
                status=status,
            )
        )
    db.commit()
    return user


@pytest.fixture
def user(db) -> User:
    """A user with no customer or connection yet."""
    user = User(email=TEST_EMAIL)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def connected_user(db) -> User:
    """A user with a customer and one active connection."""
    return create_user_with_connection(db)


@pytest.fixture
def other_user(db) -> User:
    """A second user owning a different customer and connection."""
    return create_user_with_connection(
        db,
        email="bob@example.com",
        customer_id="cust-999",
        connection_id="conn-999",
    )
