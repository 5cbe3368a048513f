"""Process-wide logging setup for the API and the setup script."""

import logging

from config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"

# Loggers that echo every SQL statement or HTTP exchange at INFO/DEBUG.
# The Salt Edge client keeps its own per-request audit trail instead.
NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "keyring",
    "multipart",
)


def setup_logging() -> None:
    """Configure the root logger from ``settings.LOG_LEVEL``.

    Third-party loggers in :data:`NOISY_LOGGERS` are pinned to WARNING.
    Outside debug mode uvicorn's per-request access log is silenced too,
    since webhook deliveries would otherwise flood it.
    """
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )

    logging.getLogger(__name__).debug(
        "Logging configured: level=%s, Salt Edge mode=%s",
        settings.LOG_LEVEL, settings.SALTEDGE_STATUS,
    )
