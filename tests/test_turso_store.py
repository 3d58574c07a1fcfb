from unittest.mock import MagicMock

import pytest
import requests

from whispers.services import StoreError
from whispers.services import turso_store
from whispers.services.turso_store import TursoStore, decode_value, encode_value

URL = "libsql://whispers-test.turso.io"


def ok(result):
    return {"type": "ok", "response": {"type": "execute", "result": result}}


def pipeline_response(*results):
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    resp.json.return_value = {
        "baton": None,
        "base_url": None,
        "results": list(results) + [{"type": "ok", "response": {"type": "close"}}],
    }
    return resp


def row(id, text, lat, lng, created_at):
    return [
        {"type": "integer", "value": str(id)},
        {"type": "text", "value": text},
        {"type": "float", "value": lat},
        {"type": "float", "value": lng},
        {"type": "integer", "value": str(created_at)},
    ]


@pytest.fixture
def session():
    return MagicMock(headers={})


@pytest.fixture
def store(session, monkeypatch):
    # Pretend the schema already exists so each test sees one request.
    monkeypatch.setattr(turso_store, "_READY", {"https://whispers-test.turso.io"})
    return TursoStore(URL, auth_token="secret", session=session)


def sent_statement(session, call=0):
    body = session.post.call_args_list[call].kwargs["json"]
    return body["requests"][0]["stmt"]


def test_encode_values():
    assert encode_value(None) == {"type": "null"}
    assert encode_value(12) == {"type": "integer", "value": "12"}
    assert encode_value(True) == {"type": "integer", "value": "1"}
    assert encode_value(1.5) == {"type": "float", "value": 1.5}
    assert encode_value("hi") == {"type": "text", "value": "hi"}
    assert encode_value(b"\x00") == {"type": "blob", "base64": "AA=="}


def test_decode_values():
    assert decode_value({"type": "null"}) is None
    assert decode_value({"type": "integer", "value": "9007199254740993"}) == 9007199254740993
    assert decode_value({"type": "float", "value": 2}) == 2.0
    assert decode_value({"type": "text", "value": "x"}) == "x"
    assert decode_value({"type": "blob", "base64": "AA=="}) == b"\x00"
    with pytest.raises(StoreError):
        decode_value({"type": "mystery"})


def test_auth_header_and_endpoint(store, session):
    session.post.return_value = pipeline_response(ok({"cols": [], "rows": []}))
    store.all_recent(0, 10)

    assert session.headers["Authorization"] == "Bearer secret"
    assert session.post.call_args.args[0] == "https://whispers-test.turso.io/v2/pipeline"
    body = session.post.call_args.kwargs["json"]
    assert body["requests"][-1] == {"type": "close"}


def test_insert_returns_real_id(store, session):
    session.post.return_value = pipeline_response(
        ok({"cols": [], "rows": [], "affected_row_count": 1, "last_insert_rowid": "42"})
    )
    w = store.insert("hello", 33.9, -83.3, created_at=1700000000000)

    assert w.id == 42
    assert w.created_at == 1700000000000
    stmt = sent_statement(session)
    assert stmt["sql"].startswith("INSERT INTO whispers")
    assert stmt["args"] == [
        {"type": "text", "value": "hello"},
        {"type": "float", "value": 33.9},
        {"type": "float", "value": -83.3},
        {"type": "integer", "value": "1700000000000"},
    ]


def test_range_query_decodes_rows(store, session):
    session.post.return_value = pipeline_response(
        ok({"cols": [], "rows": [row(1, "a", 10.0, 20.0, 5000)]})
    )
    (w,) = store.range_query(10.0, 20.0, 111.111, since_ms=1000)

    assert (w.id, w.text, w.lat, w.lng, w.created_at) == (1, "a", 10.0, 20.0, 5000)
    args = sent_statement(session)["args"]
    assert args[0] == {"type": "integer", "value": "1000"}
    assert args[1]["value"] == pytest.approx(9.999)
    assert args[2]["value"] == pytest.approx(10.001)


def test_delete_returns_affected_rows(store, session):
    session.post.return_value = pipeline_response(
        ok({"cols": [], "rows": [], "affected_row_count": 3})
    )
    assert store.delete_older_than(1234) == 3
    assert sent_statement(session)["sql"].startswith("DELETE FROM whispers")


def test_statement_error_raises_store_error(store, session):
    session.post.return_value = pipeline_response(
        {"type": "error", "error": {"message": "no such table: whispers", "code": "SQLITE_ERROR"}}
    )
    with pytest.raises(StoreError, match="no such table"):
        store.all_recent(0, 10)


def test_http_failure_raises_store_error(store, session):
    session.post.side_effect = requests.ConnectionError("boom")
    with pytest.raises(StoreError):
        store.insert("x", 1.0, 1.0)


def test_schema_created_once(session, monkeypatch):
    monkeypatch.setattr(turso_store, "_READY", set())
    session.post.side_effect = [
        pipeline_response(ok({"cols": [], "rows": []}), ok({"cols": [], "rows": []})),
        pipeline_response(ok({"cols": [], "rows": []})),
        pipeline_response(ok({"cols": [], "rows": []})),
    ]
    store = TursoStore(URL, session=session)
    store.all_recent(0, 10)
    store.all_recent(0, 10)

    assert session.post.call_count == 3
    schema = session.post.call_args_list[0].kwargs["json"]["requests"]
    assert "CREATE TABLE IF NOT EXISTS whispers" in schema[0]["stmt"]["sql"]
    assert "CREATE INDEX" in schema[1]["stmt"]["sql"]
