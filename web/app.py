from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, current_app, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from stepshot.config import RunnerConfig, load_config
from stepshot.errors import ScriptMalformed
from stepshot.models import parse_script
from stepshot.service import RunService
from stepshot.store import ScriptStore

log = logging.getLogger("stepshot.web")
log.setLevel(logging.INFO)

EXTENSION_KEY = "stepshot"


def _service() -> RunService:
    return current_app.extensions[EXTENSION_KEY]


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _validate_content(content: Any) -> Optional[str]:
    """Return an error message when ``content`` is not a usable script."""

    if not isinstance(content, str):
        return "Content must be a JSON string"
    try:
        parse_script(content)
    except ScriptMalformed as exc:
        return str(exc)
    return None


def create_app(
    service: Optional[RunService] = None,
    *,
    scripts: Optional[ScriptStore] = None,
    config: Optional[RunnerConfig] = None,
) -> Flask:
    """Build the Flask application around an explicitly owned :class:`RunService`."""

    if service is None:
        config = config or load_config()
        service = RunService(config, scripts=scripts)
    if service.config.seed_example:
        service.scripts.seed_example()

    app = Flask(__name__)
    app.extensions[EXTENSION_KEY] = service

    @app.errorhandler(404)
    def not_found(error: Exception):
        return jsonify({"error": f"resource not found: {request.path}"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error: Exception):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def handle_exception(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        log.exception("Unhandled exception: %s", error)
        return jsonify({"error": "internal server error"}), 500

    @app.get("/api/scripts")
    def list_scripts():
        return jsonify({"scripts": [script.as_dict() for script in _service().scripts.list()]})

    @app.post("/api/scripts")
    def create_script():
        data = _json_body()
        name = data.get("name")
        content = data.get("content")
        if not name or not content:
            return jsonify({"error": "Missing name or content"}), 400
        problem = _validate_content(content)
        if problem:
            return jsonify({"error": problem}), 400
        script = _service().scripts.create(str(name), content)
        log.info("Created script %s (%s)", script.id, script.name)
        return jsonify(script.as_dict()), 201

    @app.get("/api/scripts/<script_id>")
    def get_script(script_id: str):
        script = _service().scripts.get(script_id)
        if script is None:
            return jsonify({"error": "Script not found"}), 404
        return jsonify(script.as_dict())

    @app.put("/api/scripts/<script_id>")
    def update_script(script_id: str):
        data = _json_body()
        name = data.get("name")
        content = data.get("content")
        if not name or not content:
            return jsonify({"error": "Missing fields"}), 400
        problem = _validate_content(content)
        if problem:
            return jsonify({"error": problem}), 400
        script = _service().scripts.update(script_id, str(name), content)
        if script is None:
            return jsonify({"error": "Script not found"}), 404
        return jsonify(script.as_dict())

    @app.delete("/api/scripts/<script_id>")
    def delete_script(script_id: str):
        deleted = _service().scripts.delete(script_id)
        return jsonify({"ok": deleted}), 200 if deleted else 404

    @app.post("/api/run")
    def start_run():
        script_id = _json_body().get("scriptId")
        if not script_id or not isinstance(script_id, str):
            return jsonify({"error": "Missing or invalid scriptId"}), 400
        run_id = _service().start_script(script_id)
        if run_id is None:
            return jsonify({"error": "Script not found"}), 404
        return jsonify({"runId": run_id})

    @app.get("/api/run/<run_id>")
    def get_run(run_id: str):
        run = _service().get_run(run_id)
        if run is None:
            return jsonify({"error": "Run not found"}), 404
        return jsonify(run.as_dict())

    @app.get("/api/run/<run_id>/report")
    def run_report(run_id: str):
        run = _service().get_run(run_id)
        if run is None:
            return jsonify({"error": "Run not found"}), 404

        report_format = (request.args.get("format") or "json").lower()
        if report_format == "html":
            return render_template("report.html", run=run), 200, {"Content-Type": "text/html; charset=utf-8"}
        if report_format != "json":
            return jsonify({"error": f"Unsupported report format '{report_format}'"}), 400
        return jsonify(run.as_dict())

    return app


if __name__ == "__main__":  # pragma: no cover - manual run helper
    application = create_app()
    application.run(host="0.0.0.0", port=5000, debug=True, use_reloader=False)
