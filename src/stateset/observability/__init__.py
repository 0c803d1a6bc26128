"""Sentry error reporting."""

import logging
from typing import TYPE_CHECKING

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

if TYPE_CHECKING:
    from stateset.config import SentryConfig

logger = logging.getLogger(__name__)


def init_sentry(config: "SentryConfig | None") -> bool:
    """Initialize Sentry if a DSN is configured.

    ERROR logs become Sentry events; INFO and above are kept as breadcrumbs.

    Returns:
        True if Sentry was initialized, False otherwise.
    """
    if config is None or not config.dsn:
        logger.debug("sentry_not_configured")
        return False

    sentry_sdk.init(
        dsn=config.dsn.get_secret_value(),
        environment=config.environment,
        release=config.release,
        traces_sample_rate=config.traces_sample_rate,
        profiles_sample_rate=config.profiles_sample_rate,
        send_default_pii=config.send_default_pii,
        debug=config.debug,
        integrations=[
            AsyncioIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
    )

    logger.info("sentry_initialized", extra={"sentry.environment": config.environment})
    return True
