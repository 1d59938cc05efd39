"""
Serves the static dashboard.

The frontend is a single page that navigates client-side, so every non-API
path falls back to index.html. Real assets are served by Flask's static route.
"""

from flask import Blueprint, current_app, send_from_directory

web_bp = Blueprint("web", __name__)


@web_bp.route("/", defaults={"path": ""})
@web_bp.route("/<path:path>")
def index(path: str):
    return send_from_directory(current_app.static_folder, "index.html")
