#!/usr/bin/env python3
"""
flowboard server
----------------
JSON API over the per-principal boards.

The identity layer in front of this server authenticates the user and
passes the principal id in X-Principal-Id. If a shared secret is set in
the environment (api_secret_env), every /api call must also carry it in
X-API-Key.

API:
    POST   /api/session              → start session { principal_id, items }
    DELETE /api/session              → end session
    GET    /api/board                → { columns, inbox, done, today_minutes, reality_check }
    POST   /api/capture              → body { text }; 201 { items, reality_check, overload_warning }
    POST   /api/items/<id>/move      → body { status }; { item }
    DELETE /api/items/<id>           → { deleted }
    POST   /api/quest                → { item, message }
    GET    /api/insights             → { badges, coaching, stats }
    GET    /health

Any mutation that cannot be saved answers 503 and leaves the board unchanged.

Usage:
    python -m flowboard.server --config config/flowboard.yaml --port 3000
"""

import asyncio
import hmac
import logging
import sys
from functools import wraps
from typing import Optional

from flask import Flask, g, jsonify, request

from .config import FlowConfig, build_adapter, build_classifier
from .persistence import PersistenceError
from .quest import EmptyPool, quest_message
from .schema import ItemStatus
from .session import SessionManager

logger = logging.getLogger(__name__)


def _board_json(board: dict) -> dict:
    return {
        "columns": [
            {**col, "items": [i.to_dict() for i in col["items"]]}
            for col in board["columns"]
        ],
        "inbox": [i.to_dict() for i in board["inbox"]],
        "done": [i.to_dict() for i in board["done"]],
        "today_minutes": board["today_minutes"],
        "reality_check": board["reality_check"].to_dict() if board["reality_check"] else None,
    }


def create_app(config: Optional[FlowConfig] = None, manager: Optional[SessionManager] = None) -> Flask:
    config = config or FlowConfig.load()
    if manager is None:
        manager = SessionManager(
            build_adapter(config),
            build_classifier(config),
            timestamp_format=config.timestamp_format,
        )

    app = Flask(__name__)
    app.config["API_SECRET"] = config.api_secret
    app.extensions["flowboard"] = manager

    # ── Auth ─────────────────────────────────────────────────────────────────

    def require_principal(f):
        """Decorator: check the shared secret and resolve X-Principal-Id."""
        @wraps(f)
        def decorated(*args, **kwargs):
            secret = app.config["API_SECRET"]
            if secret:
                provided = request.headers.get("X-API-Key", "").strip()
                if not hmac.compare_digest(provided, secret):
                    code = 401 if not provided else 403
                    return jsonify({"error": "Unauthorized"}), code
            principal_id = request.headers.get("X-Principal-Id", "").strip()
            if not principal_id:
                return jsonify({"error": "X-Principal-Id header is required"}), 401
            g.principal_id = principal_id
            return f(*args, **kwargs)
        return decorated

    def require_session(f):
        """Decorator: resolve the open session for the principal."""
        @wraps(f)
        @require_principal
        def decorated(*args, **kwargs):
            session = manager.get(g.principal_id)
            if session is None:
                return jsonify({"error": "No active session; POST /api/session first"}), 409
            g.session = session
            return f(*args, **kwargs)
        return decorated

    @app.errorhandler(PersistenceError)
    def persistence_failed(e):
        logger.error(f"Storage unavailable for {g.get('principal_id')}: {e}")
        return jsonify({"error": "Could not save the board. Nothing was changed, please retry."}), 503

    # ── Routes ───────────────────────────────────────────────────────────────

    @app.route("/api/session", methods=["POST"])
    @require_principal
    def api_session_start():
        session = manager.on_session_start(g.principal_id)
        return jsonify({
            "principal_id": session.principal_id,
            "items": len(session.store),
        })

    @app.route("/api/session", methods=["DELETE"])
    @require_principal
    def api_session_end():
        return jsonify({"ended": manager.on_session_end(g.principal_id)})

    @app.route("/api/board")
    @require_session
    def api_board():
        return jsonify(_board_json(g.session.board()))

    @app.route("/api/capture", methods=["POST"])
    @require_session
    def api_capture():
        data = request.get_json(force=True, silent=True) or {}
        text = data.get("text", "")
        if not isinstance(text, str) or not text.strip():
            return jsonify({"error": "text is required"}), 400

        result = asyncio.run(g.session.capture(text))
        if result.busy:
            return jsonify({"error": "An analysis is already running"}), 409
        if result.error:
            return jsonify({"error": f"Analysis failed: {result.error}. Please try again shortly."}), 502

        return jsonify({
            "items": [i.to_dict() for i in result.items],
            "reality_check": result.reality_check.to_dict(),
            "overload_warning": result.is_overloaded,
        }), 201

    @app.route("/api/items/<item_id>/move", methods=["POST"])
    @require_session
    def api_move(item_id):
        data = request.get_json(force=True, silent=True) or {}
        try:
            status = ItemStatus.coerce(data.get("status"))
        except ValueError:
            return jsonify({"error": f"Invalid status: {data.get('status')}"}), 400

        item = g.session.move(item_id, status)
        if item is None:
            return jsonify({"error": "Item not found"}), 404
        return jsonify({"item": item.to_dict()})

    @app.route("/api/items/<item_id>", methods=["DELETE"])
    @require_session
    def api_delete(item_id):
        if not g.session.delete(item_id):
            return jsonify({"error": "Item not found"}), 404
        return jsonify({"deleted": item_id})

    @app.route("/api/quest", methods=["POST"])
    @require_session
    def api_quest():
        try:
            item = g.session.pick_quest()
        except EmptyPool as e:
            return jsonify({"error": str(e)}), 404
        return jsonify({"item": item.to_dict(), "message": quest_message(item)})

    @app.route("/api/insights")
    @require_session
    def api_insights():
        return jsonify(g.session.insights())

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "sessions": len(manager.sessions)})

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="flowboard server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--config", help="Path to flowboard.yaml (overrides FLOWBOARD_CONFIG)")
    args = parser.parse_args(argv)

    config = FlowConfig.load(args.config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    if not config.api_secret:
        logger.warning(f"{config.api_secret_env} is not set; API calls are not authenticated")

    app = create_app(config)
    logger.info(f"Starting flowboard on http://{args.host}:{args.port} "
                f"(classifier={config.classifier}, storage={config.storage})")
    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
