"""Firestore REST client: read, write, delete and query documents.

Each operation validates its path before any network call, then either
returns its result (calling ``on_success`` first when given) or calls
``on_error`` with a message and raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, NoReturn, Optional, Type, TypeVar

import httpx

from cloud_bindings.errors import (
    AuthenticationError,
    CloudBindingsError,
    DocumentMappingError,
    DocumentNotFoundError,
    FieldNotFoundError,
    FirestoreRequestError,
    InvalidPathError,
)
from cloud_bindings.logging_config import log_event
from cloud_bindings.repositories import document_path, documents_repo, query_utils
from cloud_bindings.services import object_mapper, value_codec
from cloud_bindings.services.auth_service import auth_headers

logger = logging.getLogger(__name__)

T = TypeVar('T')

_EXPECTED_FAILURES = (InvalidPathError, DocumentNotFoundError, FieldNotFoundError)


@dataclass
class DocumentSnapshot:
    """A stored document as returned by the REST API."""

    path: str
    fields: Dict[str, dict] = field(default_factory=dict)
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.path.rsplit('/', 1)[-1] if self.path else ''

    @classmethod
    def from_response(cls, payload: dict) -> 'DocumentSnapshot':
        payload = payload or {}
        if not isinstance(payload, dict):
            raise DocumentMappingError(f'Expected a document object, got {type(payload).__name__}')
        create_time = payload.get('createTime')
        update_time = payload.get('updateTime')
        try:
            return cls(
                path=payload.get('name', ''),
                fields=dict(payload.get('fields') or {}),
                create_time=value_codec.parse_timestamp(create_time) if create_time else None,
                update_time=value_codec.parse_timestamp(update_time) if update_time else None,
            )
        except (TypeError, ValueError) as exc:
            raise DocumentMappingError(f'Malformed document {payload.get("name", "")!r}: {exc}') from exc

    def to_dict(self) -> Dict[str, Any]:
        return value_codec.decode_fields(self.fields)

    def to_object(self, cls: Type[T], *, strict: bool = False) -> T:
        return object_mapper.to_object(self.fields, cls, strict=strict)

    def get(self, field_name: str, default: Any = None) -> Any:
        if field_name not in self.fields:
            return default
        return value_codec.decode_value(self.fields[field_name])


class FirestoreClient:
    def __init__(
        self,
        project_id: str,
        *,
        database_id: str = document_path.DEFAULT_DATABASE_ID,
        token_provider=None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        emulator_host: str = '',
    ) -> None:
        self.project_id = project_id
        self.database_id = database_id
        self.token_provider = token_provider
        self.root = document_path.documents_root(project_id, database_id, document_path.base_url_for(emulator_host))
        self._http = http_client if http_client is not None else httpx.Client(timeout=timeout)
        self._owns_http = http_client is None

    def close(self) -> None:
        """Close the HTTP client only if this instance created it."""
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> 'FirestoreClient':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ----------------------------
    # Plumbing
    # ----------------------------
    def _headers(self) -> Dict[str, str]:
        try:
            return auth_headers(self.token_provider)
        except Exception as exc:
            raise AuthenticationError(f"Could not obtain an access token: {exc}") from exc

    @staticmethod
    def _succeed(result, on_success: Optional[Callable]):
        if on_success is not None:
            on_success(result)
        return result

    @staticmethod
    def _fail(exc: CloudBindingsError, action: str, on_error: Optional[Callable]) -> NoReturn:
        level = logging.WARNING if isinstance(exc, _EXPECTED_FAILURES) else logging.ERROR
        log_event(
            logger,
            level,
            'firestore_request_failed',
            action=action,
            error=exc.message,
            status_code=getattr(exc, 'status_code', None),
        )
        if on_error is not None:
            on_error(exc.message)
        raise exc

    def _send(self, action: str, call: Callable[[Dict[str, str]], httpx.Response]) -> httpx.Response:
        headers = self._headers()
        try:
            response = call(headers)
        except httpx.HTTPError as exc:
            raise FirestoreRequestError(f"Error {action}: request failed: {exc}") from exc
        if response.is_success:
            return response
        body = response.text
        reason = response.reason_phrase
        if response.status_code == 404:
            raise DocumentNotFoundError(
                f"Error {action}: {reason}", status_code=404, reason=reason, body=body,
            )
        raise FirestoreRequestError(
            f"Error {action}: {reason}, Details: {body}",
            status_code=response.status_code,
            reason=reason,
            body=body,
        )

    @staticmethod
    def _read_json(response: httpx.Response, action: str):
        try:
            return response.json()
        except ValueError as exc:
            raise FirestoreRequestError(
                f"Error {action}: response is not valid JSON",
                status_code=response.status_code,
                reason=response.reason_phrase,
                body=response.text,
            ) from exc

    def _snapshot(self, response: httpx.Response, action: str) -> DocumentSnapshot:
        return DocumentSnapshot.from_response(self._read_json(response, action))

    # ----------------------------
    # Get data
    # ----------------------------
    def get_data(self, path: str, *, on_success=None, on_error=None) -> DocumentSnapshot:
        """Fetch the whole document at ``path``."""
        action = 'getting document'
        try:
            url = document_path.document_url(self.root, path)
            response = self._send(action, lambda headers: documents_repo.get_document(self._http, url, headers=headers))
            snapshot = self._snapshot(response, action)
        except CloudBindingsError as exc:
            self._fail(exc, action, on_error)
        return self._succeed(snapshot, on_success)

    def get_field(self, path: str, field_name: str, *, on_success=None, on_error=None) -> Any:
        """Fetch one field of the document at ``path`` and return its decoded value."""
        action = 'fetching field'
        try:
            url = document_path.document_url(self.root, path)
            mask = [document_path.quote_field_path(field_name)]
            response = self._send(
                action,
                lambda headers: documents_repo.get_document(self._http, url, headers=headers, mask_fields=mask),
            )
            snapshot = self._snapshot(response, action)
            if field_name not in snapshot.fields:
                raise FieldNotFoundError(f"Field '{field_name}' not found in document.")
            try:
                value = snapshot.get(field_name)
            except ValueError as exc:
                raise DocumentMappingError(f"Field '{field_name}': {exc}") from exc
        except CloudBindingsError as exc:
            self._fail(exc, action, on_error)
        return self._succeed(value, on_success)

    # ----------------------------
    # Set data
    # ----------------------------
    def set_field(self, path: str, field_name: str, value: Any, *, on_success=None, on_error=None) -> DocumentSnapshot:
        """Overwrite a single field; every other field is left untouched."""
        action = 'updating field'
        try:
            url = document_path.document_url(self.root, path)
            mask = [document_path.quote_field_path(field_name)]
            body = {'fields': {field_name: value_codec.encode_value(value)}}
            response = self._send(
                action,
                lambda headers: documents_repo.patch_document(self._http, url, body, headers=headers, update_mask=mask),
            )
            snapshot = self._snapshot(response, action)
        except CloudBindingsError as exc:
            self._fail(exc, action, on_error)
        return self._succeed(snapshot, on_success)

    def set_data(self, path: str, data, *, merge: bool = False, on_success=None, on_error=None) -> DocumentSnapshot:
        """Write a dict or mappable object to ``path``.

        Without ``merge`` the document's field set is replaced entirely.
        With ``merge`` only the given top-level fields are overwritten.
        """
        action = 'setting document'
        try:
            url = document_path.document_url(self.root, path)
            fields = object_mapper.from_object(data)
            update_mask = None
            if merge:
                if not fields:
                    raise CloudBindingsError('No fields to merge.')
                update_mask = [document_path.quote_field_path(name) for name in fields]
            response = self._send(
                action,
                lambda headers: documents_repo.patch_document(
                    self._http, url, {'fields': fields}, headers=headers, update_mask=update_mask,
                ),
            )
            snapshot = self._snapshot(response, action)
        except CloudBindingsError as exc:
            self._fail(exc, action, on_error)
        return self._succeed(snapshot, on_success)

    # ----------------------------
    # Delete data
    # ----------------------------
    def delete_data(self, path: str, *, on_success=None, on_error=None) -> None:
        action = 'deleting document'
        try:
            url = document_path.document_url(self.root, path)
            self._send(action, lambda headers: documents_repo.delete_document(self._http, url, headers=headers))
        except CloudBindingsError as exc:
            self._fail(exc, action, on_error)
        return self._succeed(None, on_success)

    # ----------------------------
    # Queries
    # ----------------------------
    def _run_query(self, collection_path: str, build_body: Callable[[str], dict]) -> List[DocumentSnapshot]:
        action = 'running query'
        parent, collection_id = document_path.split_collection_path(collection_path)
        url = document_path.run_query_url(self.root, parent)
        body = build_body(collection_id)
        response = self._send(
            action,
            lambda headers: documents_repo.run_query(self._http, url, body, headers=headers),
        )
        rows = self._read_json(response, action)
        if isinstance(rows, dict):
            rows = [rows]
        if not isinstance(rows, list):
            raise FirestoreRequestError(
                f"Error {action}: unexpected response shape",
                status_code=response.status_code,
                reason=response.reason_phrase,
                body=response.text,
            )
        return [
            DocumentSnapshot.from_response(row['document'])
            for row in rows
            if isinstance(row, dict) and row.get('document')
        ]

    def query_where_equal(
        self, collection_path: str, field_name: str, value: Any, *, limit: Optional[int] = None,
        on_success=None, on_error=None,
    ) -> List[DocumentSnapshot]:
        """Documents in ``collection_path`` whose ``field_name`` equals ``value``."""
        try:
            results = self._run_query(
                collection_path,
                lambda collection_id: query_utils.where_equal_query(
                    collection_id, document_path.quote_field_path(field_name), value, limit=limit,
                ),
            )
        except CloudBindingsError as exc:
            self._fail(exc, 'running query', on_error)
        return self._succeed(results, on_success)

    def query_ordered(
        self, collection_path: str, order_by: str, *, descending: bool = False, limit: Optional[int] = None,
        on_success=None, on_error=None,
    ) -> List[DocumentSnapshot]:
        """Documents in ``collection_path`` ordered by ``order_by``."""
        try:
            results = self._run_query(
                collection_path,
                lambda collection_id: query_utils.ordered_query(
                    collection_id, document_path.quote_field_path(order_by), descending=descending, limit=limit,
                ),
            )
        except CloudBindingsError as exc:
            self._fail(exc, 'running query', on_error)
        return self._succeed(results, on_success)

    # ----------------------------
    # Helpers
    # ----------------------------
    @staticmethod
    def convert_response(data, cls: Type[T], *, strict: bool = False) -> T:
        """Map a document (raw JSON text, dict, or snapshot) onto ``cls``."""
        return object_mapper.convert_response(data, cls, strict=strict)
