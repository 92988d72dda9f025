"""Structured query builders for the two supported query shapes.

Shape 1 filters a collection on one field equality; shape 2 orders a
collection by one field. Both accept an optional limit.
"""

from cloud_bindings.services.value_codec import encode_value

ASCENDING = 'ASCENDING'
DESCENDING = 'DESCENDING'


def _base_query(collection_id, limit=None):
    structured = {'from': [{'collectionId': collection_id}]}
    if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
        structured['limit'] = limit
    return structured


def where_equal_query(collection_id, field_path, value, limit=None):
    structured = _base_query(collection_id, limit)
    structured['where'] = {
        'fieldFilter': {
            'field': {'fieldPath': field_path},
            'op': 'EQUAL',
            'value': encode_value(value),
        }
    }
    return {'structuredQuery': structured}


def ordered_query(collection_id, field_path, descending=False, limit=None):
    structured = _base_query(collection_id, limit)
    structured['orderBy'] = [{
        'field': {'fieldPath': field_path},
        'direction': DESCENDING if descending else ASCENDING,
    }]
    return {'structuredQuery': structured}
