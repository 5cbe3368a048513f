"""Signature verification for inbound Salt Edge webhooks."""

import base64
import binascii
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from config import settings

logger = logging.getLogger(__name__)


class WebhookVerifier:
    """Checks the base64 RSA-SHA256 ``Signature`` header over the raw body.

    With no public key configured every webhook is accepted and a warning is
    logged each time. ``strict`` tells the webhook endpoint whether a failed
    check must reject the request or only be logged.
    """

    def __init__(self, public_key_pem: str | None = None, strict: bool | None = None):
        pem = public_key_pem if public_key_pem is not None else settings.SALTEDGE_PUBLIC_KEY
        self._public_key = serialization.load_pem_public_key(pem.encode()) if pem else None
        self.strict = settings.webhook_strict if strict is None else strict

    @property
    def configured(self) -> bool:
        return self._public_key is not None

    def verify(self, raw_body: bytes, signature_b64: str | None) -> bool:
        """Return True if the signature is valid (or no key is configured)."""
        if self._public_key is None:
            logger.warning(
                "SALTEDGE_PUBLIC_KEY not configured, accepting unsigned webhook"
            )
            return True

        if not signature_b64:
            logger.warning("Webhook received without a Signature header")
            return False

        try:
            signature = base64.b64decode(signature_b64, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Webhook Signature header is not valid base64")
            return False

        try:
            self._public_key.verify(signature, raw_body, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            logger.warning("Webhook signature verification failed")
            return False
        return True


def get_webhook_verifier() -> WebhookVerifier:
    return WebhookVerifier()
