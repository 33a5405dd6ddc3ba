from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from sitepatch.errors import ParseError
from sitepatch.model.job import JobPayload
from sitepatch.patch.ops import PatchRequest

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.after_request
def add_cors_headers(response):
    """Allow cross-origin requests to the API."""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    return response


@api_bp.route("/jobs", methods=["OPTIONS"])
@api_bp.route("/patch", methods=["OPTIONS"])
def preflight():
    """Handle CORS preflight."""
    return "", 204


def _selectors_error(value) -> str | None:
    if value is None or isinstance(value, str):
        return None
    if isinstance(value, list) and all(isinstance(s, str) for s in value):
        return None
    return "protectedSelectors must be a string or a list of strings"


def _payload_error(data) -> str | None:
    if not isinstance(data, dict):
        return "JSON object body required"
    prompt = data.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        return "prompt required"
    files = data.get("files")
    if not isinstance(files, dict):
        return "files must be an object"
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in files.items()):
        return "files must map names to strings"
    for key in ("preset", "target"):
        if data.get(key) is not None and not isinstance(data[key], str):
            return f"{key} must be a string"
    if data.get("brand") is not None and not isinstance(data["brand"], dict):
        return "brand must be an object"
    return _selectors_error(data.get("protectedSelectors"))


@api_bp.route("/jobs", methods=["POST"])
def create_job():
    """Queue a generation job and return its id straight away."""
    data = request.get_json(silent=True)
    problem = _payload_error(data)
    if problem:
        return jsonify({"error": problem}), 400

    job = current_app.extensions["job_repo"].create(JobPayload.from_dict(data))
    return jsonify({"id": job.id, "status": job.status.value}), 202


def _status_response(job_id: str):
    settings = current_app.config["SITEPATCH"]
    view = current_app.extensions["job_repo"].status_view(job_id, log_tail=settings.log_tail)
    if view is None:
        return jsonify({"error": "not found"}), 404
    return jsonify(view)


@api_bp.route("/jobs/status")
def job_status_query():
    """Job status by ``?id=``."""
    job_id = request.args.get("id", "")
    if not job_id:
        return jsonify({"error": "id required"}), 400
    return _status_response(job_id)


@api_bp.route("/jobs/<job_id>")
def job_status(job_id: str):
    """Get the current status of a job."""
    return _status_response(job_id)


@api_bp.route("/jobs/stats")
def job_stats():
    """Return job counts by status and the current queue depth."""
    repo = current_app.extensions["job_repo"]
    return jsonify({"jobs": repo.count_by_status(), "queued": repo.queue.size()})


@api_bp.route("/patch", methods=["POST"])
def patch():
    """Apply a patch request synchronously."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "html" not in data:
        return jsonify({"error": "html required"}), 400
    if data.get("ops") is not None and not isinstance(data["ops"], list):
        return jsonify({"error": "ops must be a list"}), 400
    problem = _selectors_error(data.get("protectedSelectors"))
    if problem:
        return jsonify({"error": problem}), 400

    engine = current_app.extensions["patch_engine"]
    try:
        result = engine.apply(PatchRequest.from_dict(data))
    except ParseError as exc:
        logger.info("Rejected patch request: %s", exc)
        return jsonify({"error": str(exc)}), 422
    return jsonify(result.to_dict())
