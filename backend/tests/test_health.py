"""Health check and app wiring tests."""


def test_health_check(anonymous_client):
    """The health endpoint needs no identity header."""
    response = anonymous_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_routers_are_mounted(client):
    paths = {route.path for route in client.app.routes}
    assert "/api/dashboard" in paths
    assert "/api/saltedge/webhook" in paths
    assert "/api/saltedge/connections/{connection_id}/data" in paths
