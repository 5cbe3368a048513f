"""External API integrations.

This package contains:
- Aggregator protocol: the normalized records every aggregator client returns
- Salt Edge client: signed REST client with rate limiting and caching
- Error translator: vendor error payloads -> typed, localized errors
- Webhook verifier: RSA signature checks for incoming notifications
"""

from integrations.aggregator_protocol import (
    AggregatorClient,
    ProviderAccount,
    ProviderConnection,
    ProviderCustomer,
    ProviderTransaction,
)
from integrations.saltedge_client import SaltEdgeClient, get_saltedge_client

__all__ = [
    "AggregatorClient",
    "ProviderAccount",
    "ProviderConnection",
    "ProviderCustomer",
    "ProviderTransaction",
    "SaltEdgeClient",
    "get_saltedge_client",
]
