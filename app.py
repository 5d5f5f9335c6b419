from flask import Flask, render_template, jsonify, request, send_file
from werkzeug.exceptions import HTTPException
from logging.handlers import RotatingFileHandler
import importlib
import logging
import pkgutil
from services.base import ServiceBase
from services.errors import ConfigLoadError, ProxyError
from services.template_store import load_all, get_path
import pathlib
import os
import sys

BASE_DIR = pathlib.Path(__file__).parent
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

logger = logging.getLogger("request_proxy")


def configure_logging(log_file, level="INFO"):
    """Stderr + rotating file on the root logger. Safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        if getattr(h, "request_proxy_handler", False):
            root.removeHandler(h)
            h.close()

    handlers = [logging.StreamHandler()]
    if log_file:
        # 100 MB per file, 10 backups
        handlers.append(RotatingFileHandler(log_file, maxBytes=100 * 1024 * 1024, backupCount=10, encoding="utf-8"))
    formatter = logging.Formatter(LOG_FORMAT)
    for h in handlers:
        h.setFormatter(formatter)
        h.request_proxy_handler = True
        root.addHandler(h)


def _default_config():
    return {
        "SECRET_KEY": os.environ.get("SECRET_KEY", "devkey-change-me"),
        "REQUESTS_CONFIG": os.environ.get("REQUESTS_CONFIG", str(BASE_DIR / "config" / "requests.yaml")),
        "UPSTREAM_TIMEOUT": float(os.environ.get("UPSTREAM_TIMEOUT", "30")),
        "LOG_FILE": os.environ.get("LOG_FILE", "all.log"),
        "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO").upper(),
    }


def create_app(test_config=None):
    app = Flask(
        __name__,
        template_folder=str(BASE_DIR / "templates"),
        static_folder=str(BASE_DIR / "static"),
    )
    app.json.ensure_ascii = False
    app.config.update(_default_config())
    if test_config:
        app.config.update(test_config)

    configure_logging(app.config["LOG_FILE"], app.config["LOG_LEVEL"])

    # Loaded once; a failure here is fatal for the process
    config_path = os.path.abspath(app.config["REQUESTS_CONFIG"])
    app.config["REQUESTS_CONFIG"] = config_path
    app.extensions["request_templates"] = load_all(config_path)

    # Service discovery
    services_path = BASE_DIR / "services"
    for finder, name, ispkg in pkgutil.iter_modules([str(services_path)]):
        if name in ("base", "__pycache__"):
            continue
        module = importlib.import_module(f"services.{name}")
        svc = getattr(module, "service", None)
        if isinstance(svc, ServiceBase):
            if svc.blueprint is not None:
                app.register_blueprint(svc.blueprint, url_prefix=svc.mount_point())

    @app.errorhandler(ProxyError)
    def handle_proxy_error(e):
        logger.warning("%s %s -> %d: %s", request.method, request.path, e.status_code, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception("unhandled error")
        return jsonify({"error": "internal server error"}), 500

    # === INDEX PAGE ===
    @app.route("/")
    def index():
        templates = [t.to_dict(i) for i, t in enumerate(app.extensions["request_templates"])]
        return render_template(
            "index.html",
            templates=templates,
            config_name=get_path(app.config["REQUESTS_CONFIG"]),
        )

    @app.route("/api/templates")
    def api_templates():
        return jsonify([t.to_dict(i) for i, t in enumerate(app.extensions["request_templates"])])

    @app.route("/download")
    def download():
        path = app.config["REQUESTS_CONFIG"]
        return send_file(
            path,
            mimetype="application/octet-stream",
            as_attachment=True,
            download_name=os.path.basename(path),
        )

    return app


def main():
    try:
        app = create_app()
    except ConfigLoadError as e:
        logger.critical("cannot load request templates: %s", e)
        sys.exit(1)

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8080"))
    try:
        app.run(host=host, port=port, threaded=True)
    except OSError as e:
        logger.critical("cannot listen on %s:%d: %s", host, port, e)
        sys.exit(1)


if __name__ == "__main__":
    main()
