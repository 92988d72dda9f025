"""Document/collection path validation and REST URL helpers."""

import re
from urllib.parse import quote

from cloud_bindings.errors import InvalidPathError

FIRESTORE_BASE_URL = 'https://firestore.googleapis.com/v1'
DEFAULT_DATABASE_ID = '(default)'

_SIMPLE_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


def path_segments(path):
    raw = str(path or '').strip().strip('/')
    if not raw:
        raise InvalidPathError('Path must not be empty.')
    segments = raw.split('/')
    if any(not segment.strip() for segment in segments):
        raise InvalidPathError(f"Path '{path}' contains an empty segment.")
    return segments


def validate_document_path(path):
    """Return the normalized path; document paths have an even segment count."""
    segments = path_segments(path)
    if len(segments) % 2 != 0:
        raise InvalidPathError(
            f"Invalid document path '{path}': expected collection/document pairs, got {len(segments)} segment(s)."
        )
    return '/'.join(segments)


def validate_collection_path(path):
    segments = path_segments(path)
    if len(segments) % 2 != 1:
        raise InvalidPathError(
            f"Invalid collection path '{path}': expected an odd number of segments, got {len(segments)}."
        )
    return '/'.join(segments)


def split_collection_path(path):
    """Return ``(parent_document_path, collection_id)``; parent is '' at the root."""
    normalized = validate_collection_path(path)
    parent, _, collection_id = normalized.rpartition('/')
    return parent, collection_id


def base_url_for(emulator_host=''):
    host = str(emulator_host or '').strip().rstrip('/')
    if not host:
        return FIRESTORE_BASE_URL
    if not host.startswith(('http://', 'https://')):
        host = f'http://{host}'
    return f'{host}/v1'


def documents_root(project_id, database_id=DEFAULT_DATABASE_ID, base_url=FIRESTORE_BASE_URL):
    if not str(project_id or '').strip():
        raise ValueError('project_id is required.')
    return f"{base_url.rstrip('/')}/projects/{project_id}/databases/{database_id or DEFAULT_DATABASE_ID}/documents"


def document_url(root, path):
    return f"{root}/{quote(validate_document_path(path), safe='/')}"


def run_query_url(root, parent=''):
    if parent:
        return f"{root}/{quote(parent, safe='/')}:runQuery"
    return f'{root}:runQuery'


def quote_field_path(name):
    """Backquote a field name unless it is a simple identifier."""
    name = str(name or '')
    if not name:
        raise InvalidPathError('Field name must not be empty.')
    if _SIMPLE_FIELD_RE.match(name):
        return name
    escaped = name.replace('\\', '\\\\').replace('`', '\\`')
    return f'`{escaped}`'
