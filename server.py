#!/usr/bin/env python3
"""Webhook server - starts Coding Agent runs from GitHub webhook deliveries."""

import dataclasses
import hashlib
import hmac
import logging
import os
import threading
import time
import uuid

from flask import Flask, jsonify, request

from config.settings import AgentConfig
from core.orchestrator import Orchestrator
from manager.tasks import invocation_context

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["WEBHOOK_SECRET"] = os.environ.get("AGENT_WEBHOOK_SECRET", "")
app.config["RUN_INLINE"] = False  # tests run pipelines on the request thread

# Pipeline runs keyed by run_id: {id: {"status": ..., "result": ..., "created": timestamp}}
_runs = {}
_runs_lock = threading.Lock()
_MAX_RUNS = 50  # prevent unbounded memory growth
_RUN_TTL = 3600  # expire runs after 1 hour

EVENTS = ("issues", "pull_request_review", "repository_dispatch", "workflow_dispatch")


def _cleanup_runs():
    """Remove expired runs. Called under _runs_lock."""
    now = time.time()
    expired = [rid for rid, run in _runs.items() if now - run["created"] > _RUN_TTL]
    for rid in expired:
        del _runs[rid]
    # Make room for one more, oldest first
    if len(_runs) >= _MAX_RUNS:
        by_age = sorted(_runs.items(), key=lambda x: x[1]["created"])
        for rid, _ in by_age[:len(_runs) - _MAX_RUNS + 1]:
            del _runs[rid]


def _store_run(event):
    """Register a queued run and return its ID."""
    run_id = str(uuid.uuid4())[:8]
    with _runs_lock:
        _cleanup_runs()
        _runs[run_id] = {"status": "queued", "event": event, "result": None, "created": time.time()}
    return run_id


def _update_run(run_id, **fields):
    with _runs_lock:
        if run_id in _runs:
            _runs[run_id].update(fields)


def _get_run(run_id):
    """Get a run by ID, or None if not found/expired."""
    with _runs_lock:
        run = _runs.get(run_id)
    if not run:
        return None
    if time.time() - run["created"] > _RUN_TTL:
        with _runs_lock:
            _runs.pop(run_id, None)
        return None
    return run


def _result_to_dict(result):
    """Serialize PipelineResult to a JSON-safe dict."""
    data = dataclasses.asdict(result)
    data.pop("plan", None)
    if result.plan is not None:
        data["plan"] = {
            "summary": result.plan.summary,
            "files": result.plan.target_files,
            "complexity": result.plan.complexity,
        }
    return data


def verify_signature(secret, body, header):
    """Check ``X-Hub-Signature-256`` against the raw request body."""
    if not header or not header.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", header)


def _execute(run_id, context):
    _update_run(run_id, status="running")
    try:
        result = Orchestrator(AgentConfig.from_env()).run(context)
    except Exception as e:  # worker thread: record, never crash the server
        logger.exception("Run %s crashed", run_id)
        _update_run(run_id, status="failure", result={"status": "failure", "message": str(e)})
        return
    _update_run(run_id, status=result.status, result=_result_to_dict(result))


@app.route("/api/webhook", methods=["POST"])
def api_webhook():
    """Accept a GitHub webhook delivery and start a run for supported events."""
    secret = app.config.get("WEBHOOK_SECRET")
    if secret and not verify_signature(secret, request.get_data(), request.headers.get("X-Hub-Signature-256")):
        return jsonify({"error": "Invalid signature"}), 401

    event = request.headers.get("X-GitHub-Event", "")
    if event == "ping":
        return jsonify({"message": "pong"})
    if event not in EVENTS:
        return jsonify({"message": f"Ignoring event {event!r}"}), 202

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Missing JSON payload"}), 400

    repository = (payload.get("repository") or {}).get("full_name", "")
    if not repository:
        return jsonify({"error": "Payload has no repository"}), 400

    context = invocation_context(
        event_name=event,
        actor=(payload.get("sender") or {}).get("login", ""),
        repository=repository,
        payload=payload,
    )
    run_id = _store_run(event)
    if app.config.get("RUN_INLINE"):
        _execute(run_id, context)
    else:
        threading.Thread(target=_execute, args=(run_id, context), daemon=True).start()

    return jsonify({"run_id": run_id, "status": _get_run(run_id)["status"]}), 202


@app.route("/api/runs/<run_id>")
def api_run_status(run_id):
    """Check status for a run."""
    run = _get_run(run_id)
    if not run:
        return jsonify({"error": "Run not found"}), 404
    return jsonify({
        "run_id": run_id,
        "event": run["event"],
        "status": run["status"],
        "result": run["result"],
    })


@app.route("/api/health")
def api_health():
    with _runs_lock:
        active = sum(1 for r in _runs.values() if r["status"] in ("queued", "running"))
    return jsonify({"status": "ok", "active_runs": active})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", 5001))
    print(f"Coding Agent webhook server running at http://localhost:{port}")
    app.run(debug=False, port=port)
