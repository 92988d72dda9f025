"""Map Firestore documents onto typed Python objects and back.

The target type's public fields are matched by name against the document's
``fields`` map. Nested objects come from ``mapValue``, enums from the
``stringValue`` member name, and lists/tuples element-wise from
``arrayValue`` using the declared element type.
"""

from __future__ import annotations

import json
import logging
import types
import typing
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from cloud_bindings.errors import DocumentMappingError, UnsupportedTypeError
from cloud_bindings.services import value_codec

logger = logging.getLogger(__name__)

T = TypeVar('T')

_UNION_TYPES = (typing.Union, getattr(types, 'UnionType', typing.Union))


def _is_object_type(tp) -> bool:
    if not isinstance(tp, type) or issubclass(tp, (Enum, str, int, float, bool, datetime, list, tuple, dict)):
        return False
    return bool(value_codec.public_field_names(tp))


def _expect(wire: dict, kind: str):
    actual = value_codec.value_kind(wire)
    if actual != kind:
        raise DocumentMappingError(f'expected {kind}, found {actual}')
    return wire[kind]


def _parse_enum(enum_type, wire: dict):
    raw = _expect(wire, 'stringValue')
    if raw in enum_type.__members__:
        return enum_type[raw]
    for member in enum_type:
        if str(member.value) == raw:
            return member
    raise DocumentMappingError(f"'{raw}' is not a member of {enum_type.__name__}")


def _parse_sequence(wire: dict, element_type, strict: bool):
    _expect(wire, 'arrayValue')
    return [parse_value(item, element_type, strict) for item in value_codec.array_items(wire)]


def parse_value(wire: dict, tp: Any, strict: bool = False) -> Any:
    """Decode one typed value into the Python type ``tp``."""
    if tp is Any or tp is None:
        return value_codec.decode_value(wire)
    if value_codec.value_kind(wire) == 'nullValue':
        return None

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin in _UNION_TYPES:
        candidates = [arg for arg in args if arg is not type(None)]
        if len(candidates) != 1:
            return value_codec.decode_value(wire)
        return parse_value(wire, candidates[0], strict)
    if origin is list:
        return _parse_sequence(wire, args[0] if args else Any, strict)
    if origin is tuple:
        element_type = args[0] if args else Any
        return tuple(_parse_sequence(wire, element_type, strict))
    if origin is dict:
        value_type = args[1] if len(args) == 2 else Any
        _expect(wire, 'mapValue')
        return {key: parse_value(item, value_type, strict) for key, item in value_codec.map_fields(wire).items()}

    if tp is list or tp is tuple:
        _expect(wire, 'arrayValue')
        return tp(value_codec.decode_value(wire))
    if tp is dict:
        _expect(wire, 'mapValue')
        return value_codec.decode_value(wire)
    if tp is str:
        return _expect(wire, 'stringValue')
    if tp is bool:
        raw = _expect(wire, 'booleanValue')
        return raw if isinstance(raw, bool) else str(raw).strip().lower() == 'true'
    if tp is int:
        return int(_expect(wire, 'integerValue'))
    if tp is float:
        kind = value_codec.value_kind(wire)
        # Whole-number doubles are sometimes stored as integers.
        if kind == 'integerValue':
            return float(wire[kind])
        return value_codec.parse_double(_expect(wire, 'doubleValue'))
    if tp is datetime:
        return value_codec.parse_timestamp(_expect(wire, 'timestampValue'))
    if isinstance(tp, type) and issubclass(tp, Enum):
        return _parse_enum(tp, wire)
    if _is_object_type(tp):
        _expect(wire, 'mapValue')
        return to_object(value_codec.map_fields(wire), tp, strict=strict)
    raise UnsupportedTypeError(f'{getattr(tp, "__name__", tp)} type not supported')


def _new_instance(cls):
    try:
        return cls()
    except TypeError as exc:
        raise DocumentMappingError(
            f'{cls.__name__} must be constructible without arguments to receive document data: {exc}'
        ) from exc


def to_object(fields: Optional[Dict[str, dict]], cls: Type[T], *, strict: bool = False) -> T:
    """Build a ``cls`` instance from a document ``fields`` map.

    Fields missing from the document keep their defaults. Conversion
    failures are logged and skipped unless ``strict`` is set.
    """
    fields = fields or {}
    instance = _new_instance(cls)
    hints = value_codec.field_type_hints(cls)
    for name in value_codec.public_field_names(cls):
        if name not in fields:
            logger.warning(f"Field '{name}' not found in the document")
            continue
        try:
            setattr(instance, name, parse_value(fields[name], hints.get(name, Any), strict))
        except (DocumentMappingError, UnsupportedTypeError, ValueError, TypeError) as exc:
            if strict:
                if isinstance(exc, DocumentMappingError):
                    raise
                raise DocumentMappingError(f"Field '{name}': {exc}") from exc
            logger.warning(f"Could not set field '{name}' on {cls.__name__}: {exc}")
    return instance


def from_object(obj) -> Dict[str, dict]:
    """Encode an object's public fields as a document ``fields`` map."""
    if isinstance(obj, dict):
        return value_codec.encode_fields(obj)
    if not value_codec.is_mappable_object(obj):
        raise UnsupportedTypeError(f'Cannot map {type(obj).__name__} to a document')
    return value_codec.encode_object(obj)


def document_fields(data) -> Dict[str, dict]:
    """Extract the ``fields`` map from raw JSON text, a dict, or a snapshot."""
    if hasattr(data, 'fields') and not isinstance(data, dict):
        return dict(data.fields or {})
    if isinstance(data, (bytes, bytearray)):
        data = data.decode('utf-8')
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError as exc:
            raise DocumentMappingError(f'Response is not valid JSON: {exc}') from exc
    if not isinstance(data, dict):
        raise DocumentMappingError(f'Cannot read document fields from {type(data).__name__}')
    return dict(data.get('fields') or {})


def convert_response(data, cls: Type[T], *, strict: bool = False) -> T:
    return to_object(document_fields(data), cls, strict=strict)
