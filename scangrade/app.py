#!/usr/bin/env python3
"""
Scan Grader - Batch Grading of Scanned Student Work
===================================================
Run: python3 -m scangrade.app
Then open: http://localhost:3000
"""
import logging

from flask import Flask, jsonify
from flask_cors import CORS

from . import config as _config
from .config import SettingsFloorProvider, config
from .routes import register_routes
from .services.gradebook import JsonGradebook
from .services.remediation import HttpRemediationPush
from .services.scan_clients import AnthropicScanService
from .session import BatchSession

logger = logging.getLogger(__name__)


def build_session():
    """Session wired to the real vision, gradebook and push services."""
    scanner = AnthropicScanService()
    return BatchSession(
        identification_service=scanner,
        analysis_service=scanner,
        floor_provider=SettingsFloorProvider(),
        gradebook=JsonGradebook(),
        push_service=HttpRemediationPush(),
    )


def create_app(session=None):
    app = Flask(__name__)
    CORS(app)

    session = session or build_session()
    app.config['SCAN_SESSION'] = session
    register_routes(app, session)

    @app.route('/api/health')
    def health():
        return jsonify({"status": "ok", "config": config.to_dict()})

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG if _config.DEBUG else logging.INFO)
    print("=" * 60)
    print("Scan Grader")
    print(f"Open http://localhost:{_config.PORT}")
    print("=" * 60)
    create_app().run(host=_config.HOST, port=_config.PORT, debug=_config.DEBUG)
