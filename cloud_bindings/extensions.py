import logging

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_extensions(config) -> bool:
    """Turn on Sentry error reporting when a DSN is configured.

    ERROR records logged by the clients become Sentry events. Safe to call
    more than once; only the first call with a DSN initializes the SDK.
    """
    global _initialized
    if config is None or not config.sentry_dsn:
        return False
    if _initialized:
        return True
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
        traces_sample_rate=0.0,
        send_default_pii=False,
        environment=config.sentry_environment,
        release=config.sentry_release,
    )
    _initialized = True
    logger.info(f"Sentry error reporting enabled ({config.sentry_environment})")
    return True
