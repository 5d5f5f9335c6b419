from __future__ import annotations

import gzip
import threading
from pathlib import Path

import pytest
import yaml
from flask import Flask, Response, jsonify, redirect, request
from werkzeug.serving import make_server

from app import create_app

GZIP_PAYLOAD = gzip.compress(b'{"compressed": true}')


def _upstream_app() -> Flask:
    upstream = Flask("upstream")

    @upstream.route("/echo", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
    def echo():
        resp = jsonify({
            "method": request.method,
            "path": request.path,
            "args": request.args.to_dict(flat=False),
            "body": request.get_data(as_text=True),
            "content_type": request.headers.get("Content-Type"),
        })
        resp.headers["X-Upstream"] = "yes"
        resp.headers.add("Set-Cookie", "a=1")
        resp.headers.add("Set-Cookie", "b=2")
        return resp

    @upstream.route("/gzip")
    def gzipped():
        return Response(GZIP_PAYLOAD, headers={"Content-Encoding": "gzip", "Content-Type": "application/json"})

    @upstream.route("/old")
    def old():
        return redirect("/new", 302)

    @upstream.route("/new")
    def new():
        return Response(b"moved here", mimetype="text/plain", headers={"X-Final": "yes"})

    @upstream.route("/teapot", methods=["POST"])
    def teapot():
        return Response(b"short and stout", status=418, mimetype="text/plain")

    return upstream


@pytest.fixture()
def gzip_payload() -> bytes:
    return GZIP_PAYLOAD


@pytest.fixture(scope="session")
def upstream_url():
    server = make_server("127.0.0.1", 0, _upstream_app(), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    thread.join(timeout=5)


@pytest.fixture()
def templates(upstream_url: str) -> list[dict]:
    return [
        {"name": "echo", "method": "GET", "url": f"{upstream_url}/echo", "params": {}},
        {"name": "create", "method": "post", "url": f"{upstream_url}/echo", "params": {"value2": 1}},
        {"name": "filtered", "method": "GET", "url": f"{upstream_url}/echo?a=b&x=0"},
        {"name": "gzip", "method": "GET", "url": f"{upstream_url}/gzip", "download": True},
        {"name": "teapot", "method": "POST", "url": f"{upstream_url}/teapot"},
        {"name": "unreachable", "method": "GET", "url": "http://127.0.0.1:1/nothing"},
        {"name": "broken-url", "method": "POST", "url": "not a url"},
        {"name": "moved", "method": "GET", "url": f"{upstream_url}/old"},
    ]


@pytest.fixture()
def config_file(tmp_path: Path, templates: list[dict]) -> Path:
    path = tmp_path / "requests.yaml"
    path.write_text(yaml.safe_dump(templates, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture()
def app(config_file: Path):
    return create_app({
        "TESTING": True,
        "REQUESTS_CONFIG": str(config_file),
        "LOG_FILE": "",
        "UPSTREAM_TIMEOUT": 5,
    })


@pytest.fixture()
def client(app):
    return app.test_client()
