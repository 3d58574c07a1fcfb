"""End-to-end tests through the Flask test client."""

import json
from unittest.mock import patch

import pytest
import requests

from app import app as flask_app

LAT, LNG = 33.9519, -83.3576
METRES_PER_DEGREE_LAT = 111_194.93

SUBSCRIPTION = {
    "endpoint": "https://push.example.com/send/abc",
    "keys": {"p256dh": "BPk", "auth": "xyz"},
}


def north(metres):
    return LAT + metres / METRES_PER_DEGREE_LAT


@pytest.fixture
def client(tmp_path):
    flask_app.config.update(
        TESTING=True,
        DATABASE_URL=f"sqlite:///{tmp_path / 'whispers.db'}",
        TURSO_AUTH_TOKEN="",
        RATE_LIMIT_SECONDS=0,
        VAPID_PRIVATE_KEY="",
        VAPID_PUBLIC_KEY="",
    )
    flask_app.extensions.pop("whispers_push", None)
    flask_app.extensions.pop("whispers_rate_limit", None)
    with flask_app.test_client() as c:
        yield c
    flask_app.extensions.pop("whispers_push", None)
    flask_app.extensions.pop("whispers_rate_limit", None)


@pytest.fixture
def push_enabled():
    flask_app.config.update(VAPID_PRIVATE_KEY="private", VAPID_PUBLIC_KEY="public")
    flask_app.extensions.pop("whispers_push", None)
    with patch("whispers.services.push.webpush") as webpush:
        yield webpush


def post(client, text="hello", lat=LAT, lng=LNG):
    return client.post("/api/messages", json={"text": text, "lat": lat, "lng": lng})


# ----------------------------------------------------------------------
# Pages
# ----------------------------------------------------------------------
def test_index_page(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Whispers" in resp.data


def test_service_worker(client):
    resp = client.get("/sw.js")
    assert resp.status_code == 200
    assert resp.mimetype == "application/javascript"
    assert b"showNotification" in resp.data


# ----------------------------------------------------------------------
# Messages
# ----------------------------------------------------------------------
def test_post_and_list(client):
    resp = post(client, "first")
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["id"] == 1
    assert body["text"] == "first"
    assert body["lat"] == LAT
    assert isinstance(body["createdAt"], int)

    post(client, "second")
    listed = client.get("/api/messages").get_json()
    assert [m["text"] for m in listed] == ["second", "first"]


def test_list_limit(client):
    for i in range(3):
        post(client, f"m{i}")
    assert len(client.get("/api/messages?limit=2").get_json()) == 2
    assert client.get("/api/messages?limit=zero").status_code == 400
    assert client.get("/api/messages?limit=0").status_code == 400


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"lat": LAT, "lng": LNG}, "Missing fields"),
        ({"text": "hi", "lat": LAT}, "Missing fields"),
        ({"text": "x" * 51, "lat": LAT, "lng": LNG}, "Whispers are limited to 50 characters"),
    ],
)
def test_post_validation(client, payload, message):
    resp = client.post("/api/messages", json=payload)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": message}


def test_post_non_json_body(client):
    resp = client.post("/api/messages", data="text=hi", content_type="text/plain")
    assert resp.status_code == 400


def test_post_rate_limited(client):
    flask_app.config["RATE_LIMIT_SECONDS"] = 60
    flask_app.extensions.pop("whispers_rate_limit", None)

    assert post(client, "one").status_code == 201
    resp = post(client, "two")
    assert resp.status_code == 429
    assert 0 < int(resp.headers["Retry-After"]) <= 61
    assert len(client.get("/api/messages").get_json()) == 1


def test_storage_failure_is_500(client, tmp_path):
    flask_app.config["DATABASE_URL"] = f"sqlite:///{tmp_path}"
    assert client.get("/api/messages").status_code == 500
    resp = post(client)
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Server error"}


def test_failed_post_does_not_start_cooldown(client, tmp_path):
    flask_app.config["RATE_LIMIT_SECONDS"] = 60
    flask_app.extensions.pop("whispers_rate_limit", None)
    good_url = flask_app.config["DATABASE_URL"]

    flask_app.config["DATABASE_URL"] = f"sqlite:///{tmp_path}"
    assert post(client).status_code == 500

    flask_app.config["DATABASE_URL"] = good_url
    assert post(client).status_code == 201
    assert post(client).status_code == 429


# ----------------------------------------------------------------------
# Proximity endpoints
# ----------------------------------------------------------------------
def test_nearby(client):
    post(client, "close", north(100))
    post(client, "far", north(1000))

    resp = client.get(f"/api/messages/nearby?lat={LAT}&lng={LNG}")
    assert resp.status_code == 200
    assert [m["text"] for m in resp.get_json()] == ["close"]

    wide = client.get(f"/api/messages/nearby?lat={LAT}&lng={LNG}&radius=2000").get_json()
    assert len(wide) == 2


def test_nearby_with_precision(client):
    post(client, "same cell", 33.98, -83.37)
    resp = client.get("/api/messages/nearby?lat=33.96&lng=-83.36&precision=1")
    assert [m["text"] for m in resp.get_json()] == ["same cell"]


@pytest.mark.parametrize(
    "query, message",
    [
        ("", "Missing lat or lng query parameters"),
        ("lat=1", "Missing lat or lng query parameters"),
        ("lat=abc&lng=1", "Invalid lat or lng values"),
        ("lat=91&lng=1", "Invalid lat or lng values"),
        ("lat=1&lng=1&radius=-1", "Invalid radius"),
        ("lat=1&lng=1&radius=999999", "Invalid radius"),
        ("lat=1&lng=1&precision=x", "Invalid precision"),
        ("lat=1&lng=1&precision=9", "Invalid precision"),
    ],
)
def test_nearby_bad_query(client, query, message):
    resp = client.get(f"/api/messages/nearby?{query}")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": message}


def test_clusters(client):
    post(client, "a", north(0))
    post(client, "b", north(10))
    post(client, "c", north(1000))

    clusters = client.get("/api/messages/clusters").get_json()
    assert sorted(c["count"] for c in clusters) == [1, 2]
    assert client.get("/api/messages/clusters?radius=5000").get_json()[0]["count"] == 3


def test_local_view(client):
    mine = post(client, "mine", north(2000)).get_json()
    post(client, "near", north(50))
    post(client, "far", north(3000))

    view = client.get(f"/api/messages/local?lat={LAT}&lng={LNG}&mine={mine['id']}").get_json()
    assert sorted(m["text"] for m in view["group"]["messages"]) == ["mine", "near"]
    assert [m["text"] for m in view["distant"]] == ["far"]
    assert view["group"]["lat"] is not None

    assert client.get(f"/api/messages/local?lat={LAT}&lng={LNG}&mine=me").status_code == 400


def test_heat(client):
    post(client)
    points = client.get("/api/messages/heat").get_json()
    assert points == [[LAT, LNG, 1.0]]
    assert len(client.get("/api/messages/heat?hours=all").get_json()) == 1
    assert client.get("/api/messages/heat?hours=-2").status_code == 400
    assert client.get("/api/messages/heat?hours=inf").status_code == 400
    assert client.get("/api/messages/heat?hours=nan").status_code == 400


# ----------------------------------------------------------------------
# Push
# ----------------------------------------------------------------------
def test_push_key(client):
    assert client.get("/api/push/key").get_json() == {"publicKey": None}


def test_subscribe_not_configured(client):
    resp = client.post("/api/subscribe", json=SUBSCRIPTION)
    assert resp.status_code == 503


def test_subscribe_malformed(client):
    resp = client.post("/api/subscribe", json={"endpoint": "nope"})
    assert resp.status_code == 400


def test_subscribe_and_nearby_notification(client, push_enabled):
    resp = client.post("/api/subscribe", json=dict(SUBSCRIPTION, lat=LAT, lng=LNG))
    assert resp.get_json() == {"success": True}
    assert json.loads(push_enabled.call_args.kwargs["data"])["title"] == "Subscribed!"
    assert client.get("/api/push/key").get_json() == {"publicKey": "public"}

    push_enabled.reset_mock()
    post(client, "hey neighbour", north(100))
    assert push_enabled.call_count == 1
    assert json.loads(push_enabled.call_args.kwargs["data"])["body"] == "hey neighbour"

    push_enabled.reset_mock()
    post(client, "across town", north(5000))
    push_enabled.assert_not_called()


def test_unsubscribe(client, push_enabled):
    client.post("/api/subscribe", json=SUBSCRIPTION)
    resp = client.delete("/api/subscribe", json={"endpoint": SUBSCRIPTION["endpoint"]})
    assert resp.get_json() == {"success": True}
    assert client.delete("/api/subscribe", json={}).status_code == 400


def test_post_survives_unreachable_push_service(client, push_enabled):
    client.post("/api/subscribe", json=dict(SUBSCRIPTION, lat=LAT, lng=LNG))

    push_enabled.side_effect = requests.ConnectionError("unreachable")
    resp = post(client, "still saved", north(100))
    assert resp.status_code == 201
    assert [w["text"] for w in client.get("/api/messages").get_json()] == ["still saved"]

    resp = client.post("/api/subscribe", json=dict(SUBSCRIPTION, lat=LAT, lng=LNG))
    assert resp.get_json() == {"success": True}
