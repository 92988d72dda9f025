"""Google Analytics 4 Measurement Protocol event logger."""

import logging
import math
import re

import httpx

from cloud_bindings.errors import AnalyticsError, InvalidEventError

logger = logging.getLogger(__name__)

COLLECT_URL = 'https://www.google-analytics.com/mp/collect'
DEBUG_COLLECT_URL = 'https://www.google-analytics.com/debug/mp/collect'

EVENT_NAME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9_]{0,39}$')
PARAM_NAME_RE = re.compile(r'^[a-z][a-z0-9_]{0,39}$')
MAX_PARAM_VALUE_LENGTH = 100


def sanitize_event_name(raw_name, *, name_re=EVENT_NAME_RE):
    name = str(raw_name or '').strip()
    if not name_re.match(name):
        return ''
    return name


def sanitize_params(raw_params, *, name_re=PARAM_NAME_RE):
    if not isinstance(raw_params, dict):
        return {}
    cleaned = {}
    for raw_key, raw_value in raw_params.items():
        key = str(raw_key or '').strip().lower().replace('-', '_').replace(' ', '_')
        if not key or not name_re.match(key):
            continue
        if isinstance(raw_value, bool):
            cleaned[key] = raw_value
            continue
        if isinstance(raw_value, float) and not math.isfinite(raw_value):
            continue
        if isinstance(raw_value, (int, float)):
            cleaned[key] = raw_value
            continue
        if isinstance(raw_value, str):
            cleaned[key] = raw_value.strip()[:MAX_PARAM_VALUE_LENGTH]
            continue
    return cleaned


def event_value(value):
    """JSON form of an event value: finite numbers and bools as-is, anything else as text."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class AnalyticsClient:
    def __init__(
        self,
        measurement_id,
        api_secret,
        client_id,
        show_log=True,
        *,
        user_id=None,
        http_client=None,
        timeout=10.0,
    ):
        if not measurement_id or not api_secret:
            raise ValueError('measurement_id and api_secret are required.')
        if not client_id:
            raise ValueError('client_id is required.')
        self.measurement_id = measurement_id
        self.api_secret = api_secret
        self.client_id = client_id
        self.user_id = user_id
        self.show_log = show_log
        self._http = http_client if http_client is not None else httpx.Client(timeout=timeout)
        self._owns_http = http_client is None

    def close(self):
        if self._owns_http:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def build_payload(self, event_name, value=None, params=None):
        safe_name = sanitize_event_name(event_name)
        if not safe_name:
            raise InvalidEventError(
                f"Invalid event name {event_name!r}: use up to 40 letters, digits or underscores, starting with a letter."
            )
        event_params = sanitize_params(params or {})
        if value is not None:
            event_params['value'] = event_value(value)
        payload = {
            'client_id': self.client_id,
            'events': [{'name': safe_name, 'params': event_params}],
        }
        if self.user_id:
            payload['user_id'] = str(self.user_id)
        return payload

    def _post(self, url, payload):
        try:
            return self._http.post(
                url,
                params={'measurement_id': self.measurement_id, 'api_secret': self.api_secret},
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise AnalyticsError(f"Request error: {exc}") from exc

    def log_event(self, event_name, value=None, *, params=None, on_success=None, on_error=None):
        """Send one event to Google Analytics. Returns the payload that was sent."""
        try:
            payload = self.build_payload(event_name, value, params)
            response = self._post(COLLECT_URL, payload)
            if not response.is_success:
                raise AnalyticsError(
                    f"Error sending analytics event: {response.reason_phrase}",
                    {'status_code': response.status_code},
                )
        except AnalyticsError as exc:
            logger.error(f"Could not send analytics event {event_name}: {exc}")
            if on_error is not None:
                on_error(exc.message)
            raise
        if self.show_log:
            logger.info(f"Event sent to Google Analytics\n{event_name}: {value}")
        if on_success is not None:
            on_success(payload)
        return payload

    def validate_event(self, event_name, value=None, *, params=None):
        """Check an event against the debug endpoint; returns its validation messages."""
        payload = self.build_payload(event_name, value, params)
        response = self._post(DEBUG_COLLECT_URL, payload)
        if not response.is_success:
            raise AnalyticsError(
                f"Error validating analytics event: {response.reason_phrase}",
                {'status_code': response.status_code},
            )
        try:
            body = response.json()
        except ValueError:
            body = {}
        return list(body.get('validationMessages') or [])
