#!/usr/bin/env python3
"""Curation API: starts, observes, cancels and dismisses playlist-creator tasks.

The browser app owns the OAuth/PKCE login and sends its bearer token with
every start request; the backend never stores it.
"""

import inspect
from typing import Callable, Optional

from flask import Flask, request, jsonify
from flask_cors import CORS

from config.settings import config_manager
from core.errors import TaskAlreadyRunning
from core.gemini_client import GeminiClient
from core.proxy_client import WqxrProxyClient
from core.session import CurationSession, Pacing
from core.spotify_client import SpotifyClient
from services.curation_tasks import TASK_KINDS
from services.task_controller import TaskController
from utils.logging_config import get_logger

logger = get_logger("web_server")


def _bearer_token() -> Optional[str]:
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        token = header[7:].strip()
        if token:
            return token
    return config_manager.get('spotify.access_token') or None


def _default_client_factory(access_token: str) -> SpotifyClient:
    timeout = int(config_manager.get('spotify.requests_timeout', 10))
    return SpotifyClient(access_token=access_token, requests_timeout=timeout)


def create_app(controller: Optional[TaskController] = None,
               client_factory: Callable[[str], SpotifyClient] = _default_client_factory,
               gemini_factory: Callable[[], GeminiClient] = GeminiClient,
               proxy_factory: Callable[[], WqxrProxyClient] = WqxrProxyClient) -> Flask:
    app = Flask(__name__)
    CORS(app, send_wildcard=True)
    controller = controller or TaskController()
    app.config['TASK_CONTROLLER'] = controller

    @app.route('/status')
    def status():
        return jsonify({"success": True, "configuration": config_manager.validate_config()})

    @app.route('/api/tasks/kinds', methods=['GET'])
    def list_task_kinds():
        return jsonify({"kinds": [{"name": k.name, "label": k.label} for k in TASK_KINDS.values()]})

    @app.route('/api/tasks/status', methods=['GET'])
    def get_task_status():
        """Endpoint to poll for the current task status."""
        return jsonify(controller.status())

    @app.route('/api/tasks/cancel', methods=['POST'])
    def cancel_task():
        if controller.cancel():
            return jsonify({"success": True, "message": "Cancellation requested."})
        return jsonify({"success": False, "error": "No task is currently running."}), 404

    @app.route('/api/tasks/dismiss', methods=['POST'])
    def dismiss_task():
        if controller.dismiss():
            return jsonify({"success": True})
        return jsonify({"success": False, "error": "A task is still running."}), 409

    @app.route('/api/tasks/<kind>', methods=['POST'])
    def start_task(kind):
        task_kind = TASK_KINDS.get(kind)
        if task_kind is None:
            return jsonify({"success": False, "error": f"Unknown task '{kind}'."}), 404

        access_token = _bearer_token()
        if not access_token:
            return jsonify({"success": False, "error": "Not logged in to Spotify."}), 401

        params = request.get_json(silent=True) or {}
        if not isinstance(params, dict):
            return jsonify({"success": False, "error": "Task parameters must be a JSON object."}), 400

        accepted = set(inspect.signature(task_kind.runner).parameters) - {'session'}
        unknown = sorted(set(params) - accepted)
        if unknown:
            return jsonify({"success": False, "error": f"Unknown parameters: {', '.join(unknown)}"}), 400

        try:
            if task_kind.validate:
                task_kind.validate(**params)
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400

        gemini = None
        if task_kind.needs_ai:
            gemini = gemini_factory()
            if not gemini.is_configured():
                return jsonify({"success": False, "error": "AI suggestions are not configured (missing Gemini API key)."}), 400

        session = CurationSession(
            client=client_factory(access_token),
            pacing=Pacing.from_config(config_manager.get_pipeline_config()),
            gemini=gemini,
            proxy=proxy_factory() if task_kind.needs_proxy else None
        )

        try:
            state = controller.start(kind, task_kind.runner, session, label=task_kind.label, **params)
        except TaskAlreadyRunning as e:
            return jsonify({"success": False, "error": e.user_message, "running": e.running_kind}), 409

        return jsonify({"success": True, "task": state}), 202

    return app


def run(host: str = None, port: int = None):
    web_config = config_manager.get_web_config()
    host = host or web_config.get('host', '127.0.0.1')
    port = port or int(web_config.get('port', 5001))
    logger.info(f"Curation API listening on {host}:{port}")
    create_app().run(host=host, port=port, threaded=True)


if __name__ == '__main__':
    from utils.logging_config import setup_logging
    setup_logging(config_manager.get('logging.level', 'INFO'))
    run()
