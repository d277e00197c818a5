import asyncio
import logging
import threading
from numbers import Number

from flask import Flask, jsonify, request

logger = logging.getLogger(__name__)


def _valid_sample(row):
    return (
        isinstance(row, dict)
        and isinstance(row.get("kind"), str)
        and isinstance(row.get("value"), Number)
        and not isinstance(row.get("value"), bool)
    )


def create_app(session=None):
    app = Flask(__name__)
    received = []
    lock = threading.Lock()
    app.config["RECEIVED_SAMPLES"] = received

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "ok",
            "connected": bool(session and session.connected),
            "buffered": len(session.buffer) if session else 0,
        })

    @app.route("/latest", methods=["GET"])
    def latest():
        if session is None:
            return jsonify({})
        return jsonify({kind: sample.to_dict() for kind, sample in dict(session.latest).items()})

    @app.route("/heart-rate", methods=["GET"])
    def get_heart_rate():
        sample = session.latest.get("heart_rate") if session else None
        return jsonify({"heart_rate": int(sample.value) if sample else None})

    @app.route("/samples", methods=["POST"])
    def receive_samples():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "expected a JSON object"}), 400
        device = payload.get("id")
        rows = payload.get("samples")
        if not isinstance(device, str) or not device:
            return jsonify({"error": "missing device id"}), 400
        if not isinstance(rows, list):
            return jsonify({"error": "samples must be a list"}), 400
        bad = [i for i, row in enumerate(rows) if not _valid_sample(row)]
        if bad:
            return jsonify({"error": "invalid samples", "indexes": bad[:10]}), 400

        with lock:
            received.extend(dict(row, device=device) for row in rows)
        logger.info("Received batch %s from %s: %d samples", payload.get("batch"), device, len(rows))
        return jsonify({"received": len(rows), "batch": payload.get("batch")}), 201

    @app.route("/samples", methods=["GET"])
    def list_samples():
        kind = request.args.get("kind")
        with lock:
            rows = [r for r in received if kind is None or r["kind"] == kind]
        return jsonify({"samples": rows, "count": len(rows)})

    return app


def start_background_session(session):
    """Run the session's BLE loop on its own event loop in a daemon thread."""

    def _run():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(session.run())
        finally:
            loop.close()

    t = threading.Thread(target=_run, name="wearbridge-ble", daemon=True)
    t.start()
    return t
