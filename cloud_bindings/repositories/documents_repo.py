"""HTTP accessors for Firestore documents (REST v1)."""

METHOD_OVERRIDE_HEADER = 'X-HTTP-Method-Override'


def get_document(http, url, *, headers=None, mask_fields=None):
    params = [('mask.fieldPaths', name) for name in (mask_fields or [])]
    return http.get(url, params=params or None, headers=headers)


def patch_document(http, url, body, *, headers=None, update_mask=None):
    """Write document fields with a POST that the server treats as PATCH."""
    params = [('updateMask.fieldPaths', name) for name in (update_mask or [])]
    request_headers = dict(headers or {})
    request_headers[METHOD_OVERRIDE_HEADER] = 'PATCH'
    return http.post(url, params=params or None, json=body, headers=request_headers)


def delete_document(http, url, *, headers=None):
    return http.delete(url, headers=headers)


def run_query(http, url, body, *, headers=None):
    return http.post(url, json=body, headers=headers)
