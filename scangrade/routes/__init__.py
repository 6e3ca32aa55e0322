"""
Scan Grader API Routes
======================

Route blueprints for the scan grader.

Usage:
    from scangrade.routes import register_routes
    register_routes(app, session)
"""
from .scan_routes import scan_bp, init_scan_routes


def register_routes(app, session=None):
    """Register all route blueprints with the Flask app."""

    # Initialize scan routes with the session if provided
    if session is not None:
        init_scan_routes(session)

    app.register_blueprint(scan_bp)


__all__ = [
    'register_routes',
    'scan_bp',
    'init_scan_routes'
]
