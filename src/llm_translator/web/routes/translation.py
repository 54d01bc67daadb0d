"""Translation request API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from llm_translator.ai.exceptions import TranslationError
from llm_translator.logger import get_logger
from llm_translator.translation.engine import TranslationEngine

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)

MAX_EVENTS_PER_POLL = 100
MAX_EVENT_WAIT_SECONDS = 30.0


def _engine() -> TranslationEngine:
    return current_app.extensions["translation_engine"]


@translation_bp.post("/translations")
def submit_translation():
    """Submit text for translation; the outcome arrives on the event stream."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    text = data.get("text")
    preset = data.get("preset")
    priority = data.get("priority", "normal")

    if not isinstance(text, str):
        return jsonify({"error": "Field 'text' must be a string", "code": "invalid_request"}), 400
    if preset is not None and not isinstance(preset, str):
        return jsonify({"error": "Field 'preset' must be a string", "code": "invalid_request"}), 400

    try:
        submission = _engine().submit(text, preset=preset, priority=priority)
    except TranslationError as e:
        logger.warning("Rejected translation request: %s", e)
        error_response = {"error": str(e), "code": e.code}
        if e.details:
            error_response["details"] = e.details
        return jsonify(error_response), 400
    except ValueError as e:
        return jsonify({"error": str(e), "code": "invalid_priority"}), 400

    return jsonify(submission.to_dict()), 202


@translation_bp.delete("/translations/<request_id>")
def cancel_translation(request_id: str):
    """Cancel a queued or in-flight translation request."""
    if _engine().cancel(request_id):
        return jsonify({"cancelled": True, "request_id": request_id})
    return jsonify({"error": f"Request {request_id} not found or already finished", "code": "not_found"}), 404


@translation_bp.get("/stats")
def get_stats():
    """Return a snapshot of queue, cache and rate-limit state."""
    return jsonify(_engine().stats().to_dict())


@translation_bp.get("/events")
def poll_events():
    """
    Drain buffered lifecycle events.

    Waits up to `timeout` seconds for the first event when none are buffered,
    then returns at most `max` events.
    """
    try:
        timeout = float(request.args.get("timeout", 0))
        max_events = int(request.args.get("max", MAX_EVENTS_PER_POLL))
    except (TypeError, ValueError):
        return jsonify({"error": "timeout and max must be numbers", "code": "invalid_request"}), 400

    timeout = min(max(timeout, 0.0), MAX_EVENT_WAIT_SECONDS)
    max_events = min(max(max_events, 1), MAX_EVENTS_PER_POLL)

    channel = _engine().events
    events = channel.drain(max_events)
    if not events and timeout > 0:
        first = channel.get(timeout=timeout)
        if first is not None:
            events = [first] + channel.drain(max_events - 1)

    return jsonify({"events": [event.to_dict() for event in events]})
