"""Tests for webhook signature verification."""

import base64

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from integrations.webhook_verifier import WebhookVerifier

BODY = b'{"data":{"connection_id":"conn-200","customer_id":"cust-100","stage":"success"}}'


@pytest.fixture(scope="module")
def key_pair():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_key, public_pem


def _sign(private_key, body: bytes) -> str:
    signature = private_key.sign(body, padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode()


def test_valid_signature(key_pair):
    private_key, public_pem = key_pair
    verifier = WebhookVerifier(public_key_pem=public_pem, strict=True)
    assert verifier.configured is True
    assert verifier.verify(BODY, _sign(private_key, BODY)) is True


def test_signature_over_different_body_fails(key_pair):
    private_key, public_pem = key_pair
    verifier = WebhookVerifier(public_key_pem=public_pem)
    tampered = BODY.replace(b"success", b"error")
    assert verifier.verify(tampered, _sign(private_key, BODY)) is False


def test_missing_signature_fails(key_pair):
    _, public_pem = key_pair
    verifier = WebhookVerifier(public_key_pem=public_pem)
    assert verifier.verify(BODY, None) is False
    assert verifier.verify(BODY, "") is False


def test_malformed_base64_fails(key_pair):
    _, public_pem = key_pair
    verifier = WebhookVerifier(public_key_pem=public_pem)
    assert verifier.verify(BODY, "not*base64!") is False


def test_signature_from_another_key_fails(key_pair):
    _, public_pem = key_pair
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    verifier = WebhookVerifier(public_key_pem=public_pem)
    assert verifier.verify(BODY, _sign(other_key, BODY)) is False


def test_no_public_key_accepts_everything_with_warning(caplog):
    verifier = WebhookVerifier(public_key_pem="", strict=False)
    assert verifier.configured is False
    assert verifier.verify(BODY, None) is True
    assert "SALTEDGE_PUBLIC_KEY not configured" in caplog.text


def test_strict_defaults_to_settings(monkeypatch):
    monkeypatch.setattr("integrations.webhook_verifier.settings.SALTEDGE_WEBHOOK_STRICT", True)
    assert WebhookVerifier(public_key_pem="").strict is True
