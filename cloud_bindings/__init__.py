from .config import load_config
from .extensions import init_extensions
from .logging_config import configure_logging


def _prepare(config):
    config = config or load_config()
    configure_logging(config.log_level)
    init_extensions(config)
    return config


def create_firestore_client(config=None, *, http_client=None):
    """Build a FirestoreClient from environment settings."""
    config = _prepare(config)
    if not config.firestore_enabled:
        raise RuntimeError('FIRESTORE_PROJECT_ID must be set to use the Firestore client.')

    from .services.auth_service import resolve_credentials
    from .services.firestore_service import FirestoreClient

    # The emulator accepts unauthenticated requests.
    token_provider = None
    if not config.emulator_host:
        token_provider = resolve_credentials(config, application_default=config.use_application_default)
    return FirestoreClient(
        config.project_id,
        database_id=config.database_id,
        token_provider=token_provider,
        http_client=http_client,
        timeout=config.http_timeout_seconds,
        emulator_host=config.emulator_host,
    )


def create_analytics_client(config=None, *, http_client=None):
    """Build an AnalyticsClient from environment settings."""
    config = _prepare(config)
    if not config.analytics_enabled:
        raise RuntimeError('GA_MEASUREMENT_ID and GA_API_SECRET must be set to use the analytics client.')
    if not config.client_id:
        raise RuntimeError('GA_CLIENT_ID must be set to use the analytics client.')

    from .services.analytics_service import AnalyticsClient

    return AnalyticsClient(
        config.measurement_id,
        config.api_secret,
        config.client_id,
        config.show_log,
        http_client=http_client,
        timeout=config.http_timeout_seconds,
    )
