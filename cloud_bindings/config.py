import os
from dataclasses import dataclass

from dotenv import load_dotenv

TRUTHY_VALUES = {'1', 'true', 'yes', 'on'}


def _env(name, default=''):
    return (os.getenv(name, default) or default).strip()


def _env_bool(name, default=False):
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in TRUTHY_VALUES


@dataclass(frozen=True)
class AppConfig:
    """Central settings for both clients, read from the environment."""

    project_id: str = ''
    database_id: str = '(default)'
    emulator_host: str = ''
    http_timeout_seconds: float = 30.0
    measurement_id: str = ''
    api_secret: str = ''
    client_id: str = ''
    show_log: bool = True
    service_account_json: str = ''
    credentials_path: str = ''
    use_application_default: bool = False
    log_level: str = 'INFO'
    sentry_dsn: str = ''
    sentry_environment: str = 'production'
    sentry_release: str = 'cloud-bindings'

    @property
    def firestore_enabled(self) -> bool:
        return bool(self.project_id)

    @property
    def analytics_enabled(self) -> bool:
        return bool(self.measurement_id and self.api_secret)


def load_config() -> AppConfig:
    load_dotenv()
    raw_timeout = _env('HTTP_TIMEOUT_SECONDS', '30')
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise RuntimeError(f'HTTP_TIMEOUT_SECONDS must be a number, got {raw_timeout!r}.')
    if timeout <= 0:
        raise RuntimeError('HTTP_TIMEOUT_SECONDS must be positive.')

    config = AppConfig(
        project_id=_env('FIRESTORE_PROJECT_ID') or _env('GOOGLE_CLOUD_PROJECT'),
        database_id=_env('FIRESTORE_DATABASE_ID', '(default)'),
        emulator_host=_env('FIRESTORE_EMULATOR_HOST'),
        http_timeout_seconds=timeout,
        measurement_id=_env('GA_MEASUREMENT_ID'),
        api_secret=_env('GA_API_SECRET'),
        client_id=_env('GA_CLIENT_ID'),
        show_log=_env_bool('GA_SHOW_LOG', True),
        service_account_json=_env('FIREBASE_SERVICE_ACCOUNT_JSON'),
        credentials_path=_env('GOOGLE_APPLICATION_CREDENTIALS').strip('"').strip("'"),
        use_application_default=_env_bool('FIRESTORE_USE_ADC'),
        log_level=_env('LOG_LEVEL', 'INFO').upper(),
        sentry_dsn=_env('SENTRY_DSN'),
        sentry_environment=_env('SENTRY_ENVIRONMENT', 'production'),
        sentry_release=_env('SENTRY_RELEASE', 'cloud-bindings'),
    )
    if config.measurement_id and not config.api_secret:
        raise RuntimeError('GA_API_SECRET must be set when GA_MEASUREMENT_ID is configured.')
    return config
