import math

from flask import Flask, g, jsonify, render_template, request, send_from_directory

from whispers import config
from whispers.models import PushSubscription, parse_whisper_payload
from whispers.services import (
    PushNotConfigured,
    PushService,
    StoreError,
    WhisperService,
    create_store,
)
from whispers.utils.logging import setup_logging
from whispers.utils.ratelimit import RateLimiter

setup_logging(config.LOG_LEVEL)

app = Flask(__name__)
app.config.update(
    DATABASE_URL=config.DATABASE_URL,
    TURSO_AUTH_TOKEN=config.TURSO_AUTH_TOKEN,
    RETENTION_DAYS=config.RETENTION_DAYS,
    NEARBY_RADIUS_M=config.NEARBY_RADIUS_M,
    GROUP_RADIUS_M=config.GROUP_RADIUS_M,
    CLUSTER_RADIUS_M=config.CLUSTER_RADIUS_M,
    MAX_QUERY_RADIUS_M=config.MAX_QUERY_RADIUS_M,
    MAX_CHARACTERS=config.MAX_CHARACTERS,
    RATE_LIMIT_SECONDS=config.RATE_LIMIT_SECONDS,
    VAPID_PUBLIC_KEY=config.VAPID_PUBLIC_KEY,
    VAPID_PRIVATE_KEY=config.VAPID_PRIVATE_KEY,
    VAPID_SUBJECT=config.VAPID_SUBJECT,
)

MAX_LIST_LIMIT = 1000


# ----------------------------------------------------------------------
# Per-request store, process-wide push registry and rate limiter
# ----------------------------------------------------------------------
def get_service() -> WhisperService:
    if "whisper_service" not in g:
        store = create_store(
            app.config["DATABASE_URL"], app.config["TURSO_AUTH_TOKEN"] or None
        )
        g.whisper_service = WhisperService(
            store,
            retention_days=app.config["RETENTION_DAYS"],
            nearby_radius_m=app.config["NEARBY_RADIUS_M"],
            group_radius_m=app.config["GROUP_RADIUS_M"],
            cluster_radius_m=app.config["CLUSTER_RADIUS_M"],
            max_characters=app.config["MAX_CHARACTERS"],
        )
    return g.whisper_service


@app.teardown_appcontext
def close_store(_exc=None):
    service = g.pop("whisper_service", None)
    if service is not None:
        service.store.close()


def get_push() -> PushService:
    if "whispers_push" not in app.extensions:
        app.extensions["whispers_push"] = PushService(
            private_key=app.config["VAPID_PRIVATE_KEY"],
            public_key=app.config["VAPID_PUBLIC_KEY"],
            subject=app.config["VAPID_SUBJECT"],
        )
    return app.extensions["whispers_push"]


def get_rate_limiter() -> RateLimiter:
    if "whispers_rate_limit" not in app.extensions:
        app.extensions["whispers_rate_limit"] = RateLimiter(
            app.config["RATE_LIMIT_SECONDS"]
        )
    return app.extensions["whispers_rate_limit"]


def error(message: str, status: int):
    return jsonify({"error": message}), status


def query_coords():
    """(lat, lng) from the query string; raises ValueError with the API message."""
    lat_param = request.args.get("lat")
    lng_param = request.args.get("lng")
    if not lat_param or not lng_param:
        raise ValueError("Missing lat or lng query parameters")
    try:
        lat, lng = float(lat_param), float(lng_param)
    except ValueError:
        raise ValueError("Invalid lat or lng values") from None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValueError("Invalid lat or lng values")
    return lat, lng


def query_int(name: str):
    """Optional integer query parameter; None when absent."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}") from None


def query_radius(default: float) -> float:
    raw = request.args.get("radius")
    if raw is None:
        return default
    try:
        radius = float(raw)
    except ValueError:
        raise ValueError("Invalid radius") from None
    if not 0 <= radius <= app.config["MAX_QUERY_RADIUS_M"]:
        raise ValueError("Invalid radius")
    return radius


# ----------------------------------------------------------------------
# Pages
# ----------------------------------------------------------------------
@app.route("/")
def index():
    return render_template(
        "index.html",
        fallback_center=config.FALLBACK_CENTER,
        max_characters=app.config["MAX_CHARACTERS"],
        rate_limit_seconds=app.config["RATE_LIMIT_SECONDS"],
    )


@app.route("/sw.js")
def service_worker():
    # Served from the root so its scope covers the whole site.
    return send_from_directory(app.static_folder, "sw.js", mimetype="application/javascript")


# ----------------------------------------------------------------------
# Whispers API
# ----------------------------------------------------------------------
@app.route("/api/messages", methods=["GET"])
def list_messages():
    try:
        limit = min(int(request.args.get("limit", 500)), MAX_LIST_LIMIT)
    except ValueError:
        return error("Invalid limit", 400)
    if limit < 1:
        return error("Invalid limit", 400)

    try:
        whispers = get_service().recent(limit)
    except StoreError as exc:
        app.logger.error("GET /api/messages error: %s", exc)
        return error("Server error", 500)
    return jsonify([w.to_dict() for w in whispers])


@app.route("/api/messages", methods=["POST"])
def create_message():
    try:
        text, lat, lng = parse_whisper_payload(
            request.get_json(silent=True), app.config["MAX_CHARACTERS"]
        )
    except ValueError as exc:
        return error(str(exc), 400)

    limiter = get_rate_limiter()
    client = request.remote_addr or "unknown"
    if not limiter.hit(client):
        wait = int(limiter.retry_after(client)) + 1
        resp, status = error(f"Slow down – you can whisper again in {wait}s", 429)
        resp.headers["Retry-After"] = str(wait)
        return resp, status

    try:
        whisper = get_service().post(text, lat, lng)
    except StoreError as exc:
        limiter.forget(client)
        app.logger.error("POST /api/messages error: %s", exc)
        return error("Server error", 500)

    app.logger.info("Saved whisper %s", whisper.id)
    sent = get_push().notify_nearby(whisper, app.config["GROUP_RADIUS_M"])
    if sent:
        app.logger.info("Notified %s nearby subscribers", sent)
    return jsonify(whisper.to_dict()), 201


@app.route("/api/messages/nearby", methods=["GET"])
def nearby_messages():
    try:
        lat, lng = query_coords()
        radius = query_radius(app.config["NEARBY_RADIUS_M"])
        precision = query_int("precision")
        if precision is not None and not 0 <= precision <= 6:
            raise ValueError("Invalid precision")
    except ValueError as exc:
        return error(str(exc), 400)

    try:
        whispers = get_service().nearby(lat, lng, radius, precision)
    except StoreError as exc:
        app.logger.error("Error fetching nearby messages: %s", exc)
        return error("Internal Server Error", 500)
    return jsonify([w.to_dict() for w in whispers])


@app.route("/api/messages/clusters", methods=["GET"])
def message_clusters():
    try:
        radius = query_radius(app.config["CLUSTER_RADIUS_M"])
    except ValueError as exc:
        return error(str(exc), 400)

    try:
        clusters = get_service().clusters(radius)
    except StoreError as exc:
        app.logger.error("Error clustering messages: %s", exc)
        return error("Internal Server Error", 500)
    return jsonify([c.to_dict() for c in clusters])


@app.route("/api/messages/local", methods=["GET"])
def local_messages():
    try:
        lat, lng = query_coords()
        radius = query_radius(app.config["GROUP_RADIUS_M"])
        mine_id = query_int("mine")
    except ValueError as exc:
        return error(str(exc), 400)

    try:
        view = get_service().local_view(lat, lng, mine_id, radius)
    except StoreError as exc:
        app.logger.error("Error fetching local messages: %s", exc)
        return error("Internal Server Error", 500)
    return jsonify(view.to_dict())


@app.route("/api/messages/heat", methods=["GET"])
def heat_messages():
    hours = request.args.get("hours", "1")
    try:
        max_age_hours = None if hours == "all" else float(hours)
    except ValueError:
        return error("Invalid hours", 400)
    if max_age_hours is not None and not (math.isfinite(max_age_hours) and max_age_hours > 0):
        return error("Invalid hours", 400)

    try:
        points = get_service().heat(max_age_hours)
    except StoreError as exc:
        app.logger.error("Error building heatmap: %s", exc)
        return error("Internal Server Error", 500)
    return jsonify(points)


# ----------------------------------------------------------------------
# Push notifications
# ----------------------------------------------------------------------
@app.route("/api/push/key", methods=["GET"])
def push_key():
    return jsonify({"publicKey": app.config["VAPID_PUBLIC_KEY"] or None})


@app.route("/api/subscribe", methods=["POST"])
def subscribe():
    try:
        subscription = PushSubscription.from_payload(request.get_json(silent=True))
    except ValueError as exc:
        return error(str(exc), 400)

    try:
        get_push().subscribe(subscription)
    except PushNotConfigured:
        return error("Push notifications are not configured", 503)
    return jsonify({"success": True})


@app.route("/api/subscribe", methods=["DELETE"])
def unsubscribe():
    payload = request.get_json(silent=True) or {}
    endpoint = payload.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint:
        return error("Missing endpoint", 400)
    removed = get_push().unsubscribe(endpoint)
    return jsonify({"success": removed})


if __name__ == "__main__":
    # For development only – use a proper WSGI server in production
    app.run(debug=True, host="0.0.0.0", port=5000)
