"""Flask web interface: paste a URL or upload a link file, view the embed popup."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from queue import Queue
from typing import Optional
from urllib.parse import unquote

from flask import Flask, jsonify, redirect, render_template_string, request, url_for

from .. import activity_log
from ..commands import CommandResult, LinkDeployerCommands
from ..config import AppConfig
from ..deployer import DeploymentRequest, DeployTarget, EmbedSurface
from ..link_extractor import SelectedFile
from ..registry import PlatformRegistry
from ..url_parser import EmbedData

logger = logging.getLogger(__name__)

ALLOWED_FILE_TYPES = (".json", ".md", ".txt")
MAX_UPLOAD_BYTES = 1024 * 1024

# Commands reachable over HTTP. "file" reads server paths, so it stays terminal-only
WEB_COMMANDS = ("resolve", "detect", "extract", "process", "embed", "platforms", "config", "help")

DASHBOARD_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Link Deployer</title>
    <style>
        body { font-family: system-ui, sans-serif; max-width: 720px; margin: 2rem auto; padding: 0 1rem; }
        h1 { font-size: 1.5rem; }
        .card { background: #f5f5f5; padding: 1rem; border-radius: 8px; margin: 1rem 0; }
        .card h2 { margin-top: 0; font-size: 1rem; }
        table { width: 100%; border-collapse: collapse; }
        th, td { text-align: left; padding: 0.5rem; border-bottom: 1px solid #ddd; }
        th { font-weight: 600; }
        .btn { display: inline-block; padding: 0.5rem 1rem; background: #333; color: white; border: none;
            text-decoration: none; border-radius: 4px; cursor: pointer; }
        .btn:hover { background: #555; }
        .status { color: #0a0; }
        .error { color: #a00; }
        .embed-popup { position: relative; background: #000; border-radius: 8px; overflow: hidden; }
        .embed-popup form { position: absolute; top: 0.25rem; right: 0.25rem; }
        pre { white-space: pre-wrap; font-size: 0.85rem; }
    </style>
</head>
<body>
    <h1>Link Deployer</h1>
    <div class="card">
        <h2>Status</h2>
        {% if request.args.get('queued') %}
        <p class="status">Deployment queued.</p>
        {% elif request.args.get('error') %}
        <p class="error">{{ request.args.get('error') }}</p>
        {% else %}
        <p class="status">Running</p>
        {% endif %}
    </div>
    {% if embed %}
    <div class="card">
        <h2>Embedded Player</h2>
        <div class="embed-popup" style="width: {{ embed.width or 640 }}px; height: {{ embed.height or 360 }}px;">
            {% if embed.html %}{{ embed.html | safe }}{% else %}
            <iframe src="{{ embed.url }}" width="100%" height="100%" frameborder="0" allowfullscreen></iframe>
            {% endif %}
            <form method="post" action="{{ url_for('close_embed') }}">
                <button type="submit" class="btn">&times;</button>
            </form>
        </div>
    </div>
    {% endif %}
    <div class="card">
        <h2>Deploy Video</h2>
        <form method="post" action="{{ url_for('deploy') }}" enctype="multipart/form-data"
            style="display: flex; flex-direction: column; gap: 0.5rem;">
            <input type="url" name="url" placeholder="Paste a video URL..."
                style="padding: 0.5rem;">
            <label>or a link file (.json, .md, .txt):
                <input type="file" name="file" accept="{{ file_types }}">
            </label>
            <div>
                <label><input type="radio" name="target" value="video_stage"
                    {{ 'checked' if default_target == 'video_stage' else '' }}> Video stage</label>
                <label><input type="radio" name="target" value="embed"
                    {{ 'checked' if default_target == 'embed' else '' }}> Embed</label>
            </div>
            <button type="submit" class="btn">Deploy</button>
        </form>
    </div>
    <div class="card">
        <h2>Platforms</h2>
        <p>{{ summary }}</p>
        <table>
            <tr><th>Name</th><th>Status</th><th>Priority</th></tr>
            {% for p in platforms %}
            <tr>
                <td>{{ p.name }}</td>
                <td>{{ 'enabled' if p.enabled else 'disabled' }}</td>
                <td>{{ p.priority }}</td>
            </tr>
            {% endfor %}
        </table>
    </div>
    <div class="card">
        <h2>Activity</h2>
        {% if activity %}
        <pre>{{ activity | join('\\n') }}</pre>
        {% else %}
        <p>Nothing deployed yet.</p>
        {% endif %}
    </div>
</body>
</html>
"""


class EmbedBoard(EmbedSurface):
    """Embed surface shown on the dashboard. Holds the current embed payload."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: Optional[EmbedData] = None

    def show(self, data: EmbedData) -> None:
        with self._lock:
            self._current = data

    def close(self) -> None:
        with self._lock:
            self._current = None

    @property
    def current(self) -> Optional[EmbedData]:
        with self._lock:
            return self._current


def _parse_target(value: Optional[str], default: str) -> DeployTarget:
    try:
        return DeployTarget(value or default)
    except ValueError:
        return DeployTarget(default)


def create_app(
    registry: PlatformRegistry,
    deploy_queue: Optional[Queue] = None,
    embed_board: Optional[EmbedBoard] = None,
    config: Optional[AppConfig] = None,
) -> Flask:
    """Create and configure the Flask app."""
    config = config or AppConfig.defaults()
    embed_board = embed_board or EmbedBoard()
    commands = LinkDeployerCommands(registry, config)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES

    def _queue_request(req: DeploymentRequest) -> bool:
        """Queue a deployment for the main loop. Returns True if queued."""
        if deploy_queue is None:
            return False
        deploy_queue.put(req)
        return True

    @app.route("/")
    def dashboard():
        return render_template_string(
            DASHBOARD_TEMPLATE,
            embed=embed_board.current,
            platforms=registry.all(),
            summary=registry.summary(),
            activity=activity_log.get_lines(),
            default_target=config.default_target,
            file_types=",".join(ALLOWED_FILE_TYPES),
        )

    @app.route("/deploy", methods=["POST"])
    def deploy():
        """Queue a URL or an uploaded link file from the dashboard form."""
        target = _parse_target(request.form.get("target"), config.default_target)
        url = request.form.get("url", "").strip()
        upload = request.files.get("file")

        if url:
            req = DeploymentRequest.single(url, target)
        elif upload and upload.filename:
            name = Path(upload.filename).name
            if not name.lower().endswith(ALLOWED_FILE_TYPES):
                return redirect(url_for("dashboard", error=f"Unsupported file type: {name}"))
            req = DeploymentRequest.from_file(SelectedFile(name=name, data=upload.read()), target)
        else:
            return redirect(url_for("dashboard", error="Enter a URL or choose a file"))

        if _queue_request(req):
            return redirect(url_for("dashboard", queued=1))
        return redirect(url_for("dashboard", error="Deployment queue unavailable"))

    @app.route("/directplay/<path:video_url>", merge_slashes=False)
    def directplay(video_url: str):
        """Queue a video for the stage from the URL path.
        E.g. /directplay/https%3A%2F%2Fyoutube.com%2Fwatch%3Fv%3DVIDEOID
        Or:  /directplay/http://youtube.com/watch?v=VIDEOID (query string preserved)
        """
        decoded = unquote(video_url)
        if request.query_string:
            decoded = decoded + "?" + request.query_string.decode()
        if decoded.strip() and _queue_request(DeploymentRequest.single(decoded.strip(), DeployTarget.STAGE)):
            return "<!DOCTYPE html><html><body><p>Video queued for playback.</p></body></html>", 200
        return "<!DOCTYPE html><html><body><p>Invalid or missing URL.</p></body></html>", 400

    @app.route("/embed/close", methods=["POST"])
    def close_embed():
        embed_board.close()
        return redirect(url_for("dashboard"))

    @app.route("/api/command", methods=["POST"])
    def api_command():
        """Run a command line, e.g. {"command": "resolve https://youtu.be/..."}."""
        payload = request.get_json(silent=True) or {}
        command_line = str(payload.get("command", ""))
        parts = command_line.split()
        if parts and parts[0].lower() not in WEB_COMMANDS:
            result = CommandResult(False, f"Command not available over HTTP: {parts[0]}")
            return jsonify(result.to_dict()), 403
        result = commands.execute(command_line)
        return jsonify(result.to_dict()), 200 if result.success else 400

    return app


def run_web_server(
    registry: PlatformRegistry,
    deploy_queue: Queue,
    embed_board: EmbedBoard,
    config: AppConfig,
) -> None:
    """Run the Flask development server."""
    app = create_app(registry, deploy_queue=deploy_queue, embed_board=embed_board, config=config)
    app.run(host=config.web_host, port=config.web_port, threaded=True, use_reloader=False)
