"""Flask application factory for the clipstudio HTTP API."""

from pathlib import Path

from flask import Flask, jsonify

from clipstudio.config import Config, load_config
from clipstudio.engine import Pipeline
from clipstudio.errors import IngestError


def create_app(
    config: Config | None = None,
    pipeline: Pipeline | None = None,
    work_dir: Path | None = None,
) -> Flask:
    app = Flask(__name__)
    config = config or load_config()
    if work_dir is not None:
        config.work_dir = Path(work_dir)
        config.clips.output_dir = config.work_dir / "clips"
    app.config["CLIPSTUDIO"] = config
    app.config["WORK_DIR"] = config.work_dir
    app.extensions["clipstudio.pipeline"] = pipeline or Pipeline(config)

    from clipstudio.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(IngestError)
    def upload_rejected(error: IngestError):
        return jsonify({"error": str(error), "hint": error.hint}), error.status_code

    return app
