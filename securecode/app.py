"""Flask application setup and route definitions."""

from __future__ import annotations

import os
from typing import Optional, Tuple

from flask import Flask, jsonify, request

from .analysis_runner import AnalysisService
from .config import (
    MAX_UPLOAD_BYTES,
    READ_TIMEOUT,
    RELAY_HOST,
    RELAY_PORT,
    SUBMIT_TIMEOUT,
)
from .errors import AuthenticationRequired, InvalidSubmission, SecureCodeError
from .gemini_service import InferenceClient, build_inference_client
from .job_store import InMemoryJobStore, JobStore
from .logging_utils import register_shutdown_signals, setup_logger
from .relay import PeerRelay, start_relay_server, stop_relay_server
from .runtime import AnalysisRuntime
from .temp_cleanup import cleanup_job_temp_dirs

logger = setup_logger()

USER_HEADER = "X-User-Id"
ROLE_HEADER = "X-User-Role"


def create_app(
    *,
    store: Optional[JobStore] = None,
    inference_client: Optional[InferenceClient] = None,
    start_relay: bool = True,
    install_signal_handlers: bool = False,
) -> Flask:
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("FLASK_SECRET_KEY", "dev-secret-change")
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES

    removed = cleanup_job_temp_dirs()
    if removed:
        logger.info("Removed %d stale job directories", removed)

    client = inference_client or build_inference_client()
    logger.info("Using %s inference client", client.name)
    service = AnalysisService(store or InMemoryJobStore(), client)
    runtime = AnalysisRuntime().start()
    relay = PeerRelay()
    relay_server = None
    if start_relay:
        relay_server = runtime.call(start_relay_server(relay, RELAY_HOST, RELAY_PORT))

    async def _drain() -> None:
        if relay_server is not None:
            await stop_relay_server(relay, relay_server)
        await service.wait_for_idle()

    def shutdown() -> None:
        runtime.stop(_drain())

    if install_signal_handlers:
        register_shutdown_signals(logger, shutdown)

    app.extensions["securecode_service"] = service
    app.extensions["securecode_runtime"] = runtime
    app.extensions["securecode_relay"] = relay
    app.extensions["securecode_shutdown"] = shutdown

    register_routes(app, service, runtime)
    return app


def _requester() -> Tuple[str, str]:
    """Identity is established upstream; we only read what it forwarded."""
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        raise AuthenticationRequired()
    role = (request.headers.get(ROLE_HEADER) or "user").strip().lower()
    return user_id, role


def register_routes(app: Flask, service: AnalysisService, runtime: AnalysisRuntime) -> None:
    @app.errorhandler(SecureCodeError)
    def handle_pipeline_error(exc: SecureCodeError):
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.__class__.__name__, exc.message)
        return jsonify({"error": exc.message, "type": exc.__class__.__name__}), exc.status_code

    @app.post("/api/analysis")
    def submit_analysis():
        user_id, _ = _requester()
        upload = request.files.get("file")
        if upload and upload.filename:
            data = upload.read()
            if not data:
                raise InvalidSubmission("Uploaded file is empty.")
            payload = runtime.call(
                service.submit_archive(user_id, data, name=upload.filename),
                SUBMIT_TIMEOUT,
            )
            return jsonify(payload), 202

        body = request.get_json(silent=True) or {}
        repo_url = (request.form.get("repo_url") or body.get("repo_url") or "").strip()
        if repo_url:
            payload = runtime.call(service.submit_repository(user_id, repo_url), SUBMIT_TIMEOUT)
            return jsonify(payload), 202
        raise InvalidSubmission("Upload a ZIP archive or provide a repository URL.")

    @app.get("/api/analysis/<job_id>")
    def analysis_status(job_id: str):
        user_id, role = _requester()
        job = runtime.call(service.get_job(job_id, user_id, role), READ_TIMEOUT)
        return jsonify(job)

    @app.get("/api/analyses")
    def analysis_history():
        user_id, _ = _requester()
        analyses = runtime.call(service.list_jobs(user_id), READ_TIMEOUT)
        return jsonify({"analyses": analyses})

    @app.post("/api/analyze-code")
    def analyze_code():
        body = request.get_json(silent=True) or {}
        code = body.get("code")
        if not isinstance(code, str):
            raise InvalidSubmission("No code provided")
        result = runtime.call(service.analyze_snippet(code), SUBMIT_TIMEOUT)
        return jsonify(result)

    @app.get("/health")
    def health():
        return jsonify(
            {"status": "ok", "runtime": runtime.running, "active_jobs": service.pending_tasks}
        )


__all__ = ["create_app"]
