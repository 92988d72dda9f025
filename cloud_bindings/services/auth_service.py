"""Bearer-token helpers for authenticated Firestore REST calls."""

import json
import logging
import os
from datetime import datetime, timedelta, timezone

from firebase_admin import credentials

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN = timedelta(seconds=60)


def _utcnow():
    # google-auth reports expiry as a naive UTC datetime.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StaticTokenProvider:
    def __init__(self, token):
        self.token = str(token or '').strip()

    def get_token(self):
        return self.token


class CredentialTokenProvider:
    """Wraps a firebase_admin credential and caches its OAuth2 access token."""

    def __init__(self, credential, clock=None):
        self.credential = credential
        self._clock = clock or _utcnow
        self._token = None
        self._expiry = None

    def get_token(self):
        if self._token and self._expiry and self._expiry - TOKEN_REFRESH_MARGIN > self._clock():
            return self._token
        info = self.credential.get_access_token()
        self._token = info.access_token
        self._expiry = info.expiry
        return self._token


def resolve_credentials(config, *, application_default=False):
    """Return a token provider for the configured service account, or None.

    Sources are tried in order: FIREBASE_SERVICE_ACCOUNT_JSON blob,
    GOOGLE_APPLICATION_CREDENTIALS file, then application default
    credentials when ``application_default`` is set. None means requests go
    out unauthenticated (public rules or the emulator).
    """
    json_blob = getattr(config, 'service_account_json', '')
    if json_blob:
        try:
            info = json.loads(json_blob)
        except ValueError as exc:
            raise RuntimeError(f"Invalid FIREBASE_SERVICE_ACCOUNT_JSON: {exc}") from exc
        return CredentialTokenProvider(credentials.Certificate(info))

    path = getattr(config, 'credentials_path', '')
    if path:
        path = os.path.expanduser(os.path.expandvars(path))
        if not os.path.exists(path):
            raise FileNotFoundError(f"Firebase credential file not found: {path}")
        return CredentialTokenProvider(credentials.Certificate(path))

    if application_default:
        return CredentialTokenProvider(credentials.ApplicationDefault())

    logger.info("No Firestore credentials configured; sending unauthenticated requests")
    return None


def auth_headers(token_provider):
    if token_provider is None:
        return {}
    token = token_provider.get_token()
    if not token:
        return {}
    return {'Authorization': f'Bearer {token}'}
