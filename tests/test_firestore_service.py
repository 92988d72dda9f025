import json
from dataclasses import dataclass, field
from typing import List

import httpx
import pytest

from cloud_bindings.errors import (
    AuthenticationError,
    CloudBindingsError,
    DocumentMappingError,
    DocumentNotFoundError,
    FieldNotFoundError,
    FirestoreRequestError,
    InvalidPathError,
    UnsupportedTypeError,
)
from cloud_bindings.services.auth_service import StaticTokenProvider
from cloud_bindings.services.firestore_service import DocumentSnapshot, FirestoreClient

DOCS_PATH = "/v1/projects/demo-project/databases/(default)/documents"
DOC_NAME = "projects/demo-project/databases/(default)/documents/users/u1"


@dataclass
class User:
    name: str = ""
    level: int = 0
    tags: List[str] = field(default_factory=list)


class _Recorder:
    def __init__(self, responder):
        self.responder = responder
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.responder(request)


def _document(fields, name=DOC_NAME):
    return {
        "name": name,
        "fields": fields,
        "createTime": "2024-01-01T00:00:00.000000Z",
        "updateTime": "2024-01-02T00:00:00.000000Z",
    }


def _client(responder, **kwargs):
    recorder = _Recorder(responder)
    client = FirestoreClient("demo-project", http_client=httpx.Client(transport=httpx.MockTransport(recorder)), **kwargs)
    return client, recorder


def _ok(payload):
    return lambda _request: httpx.Response(200, json=payload)


def test_get_data_returns_snapshot_and_calls_on_success():
    client, recorder = _client(_ok(_document({"name": {"stringValue": "ada"}, "level": {"integerValue": "3"}})))
    seen = []

    snapshot = client.get_data("users/u1", on_success=seen.append)

    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.path == f"{DOCS_PATH}/users/u1"
    assert snapshot.id == "u1"
    assert snapshot.to_dict() == {"name": "ada", "level": 3}
    assert snapshot.update_time.day == 2
    assert seen == [snapshot]
    assert snapshot.to_object(User) == User(name="ada", level=3)


def test_odd_path_rejected_before_network_call():
    client, recorder = _client(_ok({}))
    errors = []

    with pytest.raises(InvalidPathError):
        client.get_data("users", on_error=errors.append)
    with pytest.raises(InvalidPathError):
        client.set_data("users/u1/posts", {"a": 1})
    with pytest.raises(InvalidPathError):
        client.delete_data("users//u1")

    assert recorder.requests == []
    assert len(errors) == 1
    assert "users" in errors[0]


def test_not_found_raises_and_reports():
    client, _recorder = _client(lambda _request: httpx.Response(404, json={"error": {"code": 404}}))
    errors = []

    with pytest.raises(DocumentNotFoundError) as excinfo:
        client.get_data("users/missing", on_error=errors.append)

    assert excinfo.value.status_code == 404
    assert errors and "Not Found" in errors[0]


def test_server_error_carries_status_and_body():
    client, _recorder = _client(lambda _request: httpx.Response(500, text="backend exploded"))

    with pytest.raises(FirestoreRequestError) as excinfo:
        client.get_data("users/u1")

    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "backend exploded"
    assert "backend exploded" in str(excinfo.value)


def test_transport_error_becomes_request_error():
    def _boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _recorder = _client(_boom)

    with pytest.raises(FirestoreRequestError):
        client.get_data("users/u1")


def test_get_field_uses_read_mask_and_decodes_value():
    client, recorder = _client(_ok(_document({"level": {"integerValue": "7"}})))

    assert client.get_field("users/u1", "level") == 7
    assert recorder.requests[0].url.params.get_list("mask.fieldPaths") == ["level"]


def test_get_field_missing_reports_error():
    client, _recorder = _client(_ok(_document({})))
    errors = []

    with pytest.raises(FieldNotFoundError):
        client.get_field("users/u1", "level", on_error=errors.append)

    assert errors == ["Field 'level' not found in document."]


def test_set_field_uses_method_override_and_update_mask():
    client, recorder = _client(_ok(_document({"score": {"doubleValue": 9.5}})))

    client.set_field("users/u1", "score", 9.5)

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["X-HTTP-Method-Override"] == "PATCH"
    assert request.url.params.get_list("updateMask.fieldPaths") == ["score"]
    assert json.loads(request.content) == {"fields": {"score": {"doubleValue": "9.5"}}}


def test_set_field_rejects_unsupported_value_without_request():
    client, recorder = _client(_ok({}))
    errors = []

    with pytest.raises(UnsupportedTypeError):
        client.set_field("users/u1", "blob", object(), on_error=errors.append)

    assert recorder.requests == []
    assert errors


def test_set_data_without_merge_replaces_all_fields():
    client, recorder = _client(_ok(_document({})))

    client.set_data("users/u1", User(name="ada", level=2, tags=["x"]))

    request = recorder.requests[0]
    assert "updateMask.fieldPaths" not in request.url.params
    assert json.loads(request.content) == {
        "fields": {
            "name": {"stringValue": "ada"},
            "level": {"integerValue": "2"},
            "tags": {"arrayValue": {"values": [{"stringValue": "x"}]}},
        }
    }


def test_set_data_merge_masks_each_top_level_field():
    client, recorder = _client(_ok(_document({})))

    client.set_data("users/u1", {"level": 5, "display-name": "Ada"}, merge=True)

    assert recorder.requests[0].url.params.get_list("updateMask.fieldPaths") == ["level", "`display-name`"]


def test_set_data_merge_with_nothing_to_write_fails():
    client, recorder = _client(_ok({}))

    with pytest.raises(CloudBindingsError):
        client.set_data("users/u1", {}, merge=True)

    assert recorder.requests == []


def test_delete_data_sends_delete():
    client, recorder = _client(lambda _request: httpx.Response(200, json={}))
    done = []

    client.delete_data("users/u1", on_success=done.append)

    assert recorder.requests[0].method == "DELETE"
    assert recorder.requests[0].url.path == f"{DOCS_PATH}/users/u1"
    assert done == [None]


def test_query_where_equal_on_subcollection():
    rows = [
        {"document": _document({"level": {"integerValue": "3"}}, name=f"{DOC_NAME}/posts/p1")},
        {"readTime": "2024-01-01T00:00:00Z"},
    ]
    client, recorder = _client(_ok(rows))

    results = client.query_where_equal("users/u1/posts", "level", 3, limit=20)

    request = recorder.requests[0]
    assert request.url.path == f"{DOCS_PATH}/users/u1:runQuery"
    structured = json.loads(request.content)["structuredQuery"]
    assert structured["from"] == [{"collectionId": "posts"}]
    assert structured["where"]["fieldFilter"]["value"] == {"integerValue": "3"}
    assert structured["limit"] == 20
    assert [doc.id for doc in results] == ["p1"]


def test_query_ordered_at_root_collection():
    client, recorder = _client(_ok([{"readTime": "2024-01-01T00:00:00Z"}]))

    results = client.query_ordered("users", "level", descending=True, limit=5)

    request = recorder.requests[0]
    assert request.url.path == f"{DOCS_PATH}:runQuery"
    structured = json.loads(request.content)["structuredQuery"]
    assert structured["orderBy"] == [{"field": {"fieldPath": "level"}, "direction": "DESCENDING"}]
    assert results == []


def test_query_requires_collection_path():
    client, recorder = _client(_ok([]))

    with pytest.raises(InvalidPathError):
        client.query_ordered("users/u1", "level")

    assert recorder.requests == []


def test_token_provider_adds_bearer_header():
    client, recorder = _client(_ok(_document({})), token_provider=StaticTokenProvider("tok-123"))

    client.get_data("users/u1")

    assert recorder.requests[0].headers["Authorization"] == "Bearer tok-123"


def test_unauthenticated_requests_have_no_authorization_header():
    client, recorder = _client(_ok(_document({})))

    client.get_data("users/u1")

    assert "Authorization" not in recorder.requests[0].headers


def test_emulator_host_changes_root():
    client = FirestoreClient("demo-project", emulator_host="localhost:8080", http_client=httpx.Client())

    assert client.root == "http://localhost:8080/v1/projects/demo-project/databases/(default)/documents"


def test_convert_response_accepts_snapshot():
    snapshot = DocumentSnapshot(path=DOC_NAME, fields={"name": {"stringValue": "ada"}})

    assert FirestoreClient.convert_response(snapshot, User).name == "ada"


class _FailingTokenProvider:
    def get_token(self):
        raise RuntimeError("refresh failed")


def test_token_failure_reports_error_without_request():
    client, recorder = _client(_ok(_document({})), token_provider=_FailingTokenProvider())
    errors = []

    with pytest.raises(AuthenticationError) as excinfo:
        client.get_data("users/u1", on_error=errors.append)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert recorder.requests == []
    assert errors and "refresh failed" in errors[0]


@pytest.mark.parametrize(
    "call",
    [
        lambda client, **kw: client.get_data("users/u1", **kw),
        lambda client, **kw: client.get_field("users/u1", "level", **kw),
        lambda client, **kw: client.set_field("users/u1", "level", 1, **kw),
        lambda client, **kw: client.set_data("users/u1", {"level": 1}, **kw),
        lambda client, **kw: client.query_where_equal("users", "level", 1, **kw),
        lambda client, **kw: client.query_ordered("users", "level", **kw),
    ],
)
def test_non_json_success_body_reports_error(call):
    client, _recorder = _client(lambda _request: httpx.Response(200, text="<html>proxy</html>"))
    errors = []
    done = []

    with pytest.raises(FirestoreRequestError) as excinfo:
        call(client, on_success=done.append, on_error=errors.append)

    assert excinfo.value.body == "<html>proxy</html>"
    assert done == []
    assert len(errors) == 1
    assert "not valid JSON" in errors[0]


def test_malformed_timestamp_reports_mapping_error():
    payload = _document({})
    payload["createTime"] = "yesterday"
    client, _recorder = _client(_ok(payload))
    errors = []

    with pytest.raises(DocumentMappingError):
        client.get_data("users/u1", on_error=errors.append)

    assert errors and "yesterday" in errors[0]


def test_get_field_undecodable_value_reports_error():
    client, _recorder = _client(_ok(_document({"level": {"integerValue": "seven"}})))
    errors = []

    with pytest.raises(DocumentMappingError):
        client.get_field("users/u1", "level", on_error=errors.append)

    assert errors and "level" in errors[0]
