# wanq/api.py
# Read-only status API; all mutation goes through the locked CLI commands
from flask import Blueprint, Flask, jsonify, request
from flask_cors import CORS

from .db import init_db, list_events, list_transitions, recent_usage
from .monitor import status_summary
from .system import resolve_wan_dev

bp = Blueprint("api", __name__)


def create_app():
    app = Flask(__name__)
    CORS(app)
    app.register_blueprint(bp, url_prefix="/api")
    init_db()

    @app.route("/")
    def index():
        return jsonify({"service": "wanq", "api": "/api/status"})

    return app


def _limit(default, maximum=1000):
    try:
        value = int(request.args.get("limit", default))
    except ValueError:
        return None
    return max(1, min(value, maximum))


@bp.route("/status", methods=["GET"])
def status():
    return jsonify({"status": status_summary(resolve_wan_dev())})


@bp.route("/events", methods=["GET"])
def events():
    limit = _limit(50)
    if limit is None:
        return jsonify({"ok": False, "error": "limit must be an integer"}), 400
    return jsonify({"events": list_events(limit)})


@bp.route("/usage", methods=["GET"])
def usage():
    limit = _limit(200)
    if limit is None:
        return jsonify({"ok": False, "error": "limit must be an integer"}), 400
    return jsonify({"usage": recent_usage(limit)})


@bp.route("/transitions", methods=["GET"])
def transitions():
    limit = _limit(50)
    if limit is None:
        return jsonify({"ok": False, "error": "limit must be an integer"}), 400
    return jsonify({"transitions": list_transitions(limit)})
