"""OS keychain storage for the Salt Edge application credentials.

The app id and secret authenticate every API call; the two PEM keys sign
outbound requests and verify inbound webhooks. All four live under one
keyring service name. ``keyring`` is imported lazily so the backend still
starts (reading credentials from the environment instead) on hosts without
a keychain backend.
"""

import logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "finsight"

PEM_KEYS: frozenset[str] = frozenset({"SALTEDGE_PRIVATE_KEY", "SALTEDGE_PUBLIC_KEY"})

CREDENTIAL_KEYS: frozenset[str] = frozenset({"SALTEDGE_APP_ID", "SALTEDGE_SECRET"}) | PEM_KEYS

# Needed to call the API at all; the PEM keys are optional in pending mode.
REQUIRED_KEYS = ("SALTEDGE_APP_ID", "SALTEDGE_SECRET")


def _keyring():
    try:
        import keyring
    except ImportError:
        return None
    return keyring


def normalize_pem(value: str) -> str:
    """Turn a flattened PEM (literal ``\\n`` escapes) back into PEM lines."""
    value = value.strip().replace("\\n", "\n")
    return value + "\n"


def get_credential(key: str) -> str | None:
    """Read one credential from the keychain.

    Returns ``None`` when the key is absent or no keychain is usable.
    """
    keyring = _keyring()
    if keyring is None:
        return None

    try:
        return keyring.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store one Salt Edge credential in the keychain.

    PEM keys are normalised before storage and must carry a ``-----BEGIN``
    header.

    Returns:
        ``True`` if stored, ``False`` if the key or value was rejected or the
        keychain refused the write.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to store non-credential key %s", key)
        return False
    if not value or not value.strip():
        logger.warning("Refusing to store empty value for %s", key)
        return False
    if key in PEM_KEYS:
        value = normalize_pem(value)
        if not value.startswith("-----BEGIN"):
            logger.warning("%s does not look like a PEM key", key)
            return False

    keyring = _keyring()
    if keyring is None:
        logger.warning("keyring is not installed, cannot store %s", key)
        return False

    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except Exception:
        logger.warning("Failed to store %s in keychain", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def missing_credentials() -> list[str]:
    """Required credential keys that the keychain does not hold."""
    return [key for key in REQUIRED_KEYS if not get_credential(key)]
