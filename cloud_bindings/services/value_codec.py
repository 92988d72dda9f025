"""Encode/decode Python values to/from Firestore REST typed values.

Every value on the wire is a one-key object such as ``{"stringValue": "x"}``.
Integers and doubles travel as JSON strings; timestamps are RFC3339 UTC with
millisecond precision.
"""

from __future__ import annotations

import dataclasses
import math
import re
import sys
import typing
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from cloud_bindings.errors import UnsupportedTypeError

VALUE_KINDS = (
    'nullValue',
    'booleanValue',
    'integerValue',
    'doubleValue',
    'timestampValue',
    'stringValue',
    'arrayValue',
    'mapValue',
)

_TIMESTAMP_RE = re.compile(
    r'^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})'
    r'(?:\.(?P<fraction>\d+))?'
    r'(?P<offset>Z|z|[+-]\d{2}:\d{2})?$'
)

_SPECIAL_DOUBLES = {'NaN': math.nan, 'Infinity': math.inf, '-Infinity': -math.inf}


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    match = _TIMESTAMP_RE.match(str(text or '').strip())
    if not match:
        raise ValueError(f'Invalid timestamp: {text!r}')
    fraction = (match.group('fraction') or '')[:6].ljust(6, '0')
    offset = match.group('offset') or 'Z'
    if offset in ('Z', 'z'):
        offset = '+00:00'
    parsed = datetime.fromisoformat(f"{match.group('base')}.{fraction}{offset}")
    return parsed.astimezone(timezone.utc)


def _format_double(value: float) -> str:
    if math.isnan(value):
        return 'NaN'
    if math.isinf(value):
        return 'Infinity' if value > 0 else '-Infinity'
    return repr(float(value))


def parse_double(raw) -> float:
    if isinstance(raw, str) and raw in _SPECIAL_DOUBLES:
        return _SPECIAL_DOUBLES[raw]
    return float(raw)


def public_field_names(cls) -> List[str]:
    """Names of the public, annotated instance fields of ``cls``."""
    if dataclasses.is_dataclass(cls):
        return [f.name for f in dataclasses.fields(cls) if not f.name.startswith('_')]
    names = []
    for name, hint in field_type_hints(cls).items():
        if name.startswith('_') or typing.get_origin(hint) is typing.ClassVar:
            continue
        names.append(name)
    return names


def _resolve_annotation(annotation, namespace):
    if isinstance(annotation, typing.ForwardRef):
        annotation = annotation.__forward_arg__
    if not isinstance(annotation, str):
        return annotation
    try:
        return eval(annotation, namespace)
    except (NameError, AttributeError, SyntaxError, TypeError):
        return Any


def field_type_hints(cls) -> Dict[str, Any]:
    """Resolved annotations of ``cls``.

    When the class as a whole cannot be resolved (a name only imported under
    TYPE_CHECKING, or defined in a local scope), each annotation is resolved
    on its own and the ones that still fail map to ``Any``.
    """
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError):
        pass
    hints = {}
    for klass in reversed(cls.__mro__):
        module = sys.modules.get(klass.__module__)
        namespace = dict(getattr(module, '__dict__', None) or {})
        namespace.update(vars(klass))
        for name, annotation in (getattr(klass, '__annotations__', None) or {}).items():
            hints[name] = _resolve_annotation(annotation, namespace)
    return hints


def is_mappable_object(value) -> bool:
    if isinstance(value, type):
        return False
    if dataclasses.is_dataclass(value):
        return True
    return bool(getattr(type(value), '__annotations__', None)) and hasattr(value, '__dict__')


def encode_object(value) -> dict:
    return {name: encode_value(getattr(value, name, None)) for name in public_field_names(type(value))}


def encode_value(value: Any) -> dict:
    if value is None:
        return {'nullValue': None}
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return {'booleanValue': value}
    if isinstance(value, Enum):
        return {'stringValue': value.name}
    if isinstance(value, int):
        return {'integerValue': str(value)}
    if isinstance(value, float):
        return {'doubleValue': _format_double(value)}
    if isinstance(value, str):
        return {'stringValue': value}
    if isinstance(value, datetime):
        return {'timestampValue': format_timestamp(value)}
    if isinstance(value, (list, tuple)):
        return {'arrayValue': {'values': [encode_value(item) for item in value]}}
    if isinstance(value, dict):
        fields = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise UnsupportedTypeError(f'Map keys must be strings, got {type(key).__name__}')
            fields[key] = encode_value(item)
        return {'mapValue': {'fields': fields}}
    if is_mappable_object(value):
        return {'mapValue': {'fields': encode_object(value)}}
    raise UnsupportedTypeError(f'Unsupported data type: {type(value).__name__}')


def encode_fields(data: Dict[str, Any]) -> Dict[str, dict]:
    """Convert a Python mapping to a document ``fields`` map."""
    return {str(key): encode_value(value) for key, value in (data or {}).items()}


def value_kind(wire: dict) -> str:
    if not isinstance(wire, dict):
        raise UnsupportedTypeError(f'Expected a typed value object, got {type(wire).__name__}')
    for kind in VALUE_KINDS:
        if kind in wire:
            return kind
    raise UnsupportedTypeError(f"Unsupported Firestore value: {sorted(wire)}")


def array_items(wire: dict) -> list:
    return list((wire.get('arrayValue') or {}).get('values') or [])


def map_fields(wire: dict) -> dict:
    return dict((wire.get('mapValue') or {}).get('fields') or {})


def decode_value(wire: dict) -> Any:
    kind = value_kind(wire)
    raw = wire[kind]
    if kind == 'nullValue':
        return None
    if kind == 'booleanValue':
        return raw if isinstance(raw, bool) else str(raw).strip().lower() == 'true'
    if kind == 'integerValue':
        return int(raw)
    if kind == 'doubleValue':
        return parse_double(raw)
    if kind == 'timestampValue':
        return parse_timestamp(raw)
    if kind == 'stringValue':
        return raw
    if kind == 'arrayValue':
        return [decode_value(item) for item in array_items(wire)]
    return decode_fields(map_fields(wire))


def decode_fields(fields: Dict[str, dict]) -> Dict[str, Any]:
    """Convert a document ``fields`` map to a plain Python dict."""
    return {key: decode_value(value) for key, value in (fields or {}).items()}
