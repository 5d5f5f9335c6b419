from __future__ import annotations
import json
import logging
from typing import Any, List, Mapping, Optional, Tuple
from urllib.parse import unquote_plus, urlencode, urlsplit, urlunsplit

import requests
from flask import Blueprint, Response, current_app, request
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from .base import ServiceBase
from .errors import (
    MalformedRequestError,
    RequestBuildError,
    UnsupportedParamError,
    UpstreamBodyReadError,
    UpstreamTransportError,
)
from .template_store import find_template

logger = logging.getLogger(__name__)

bp = Blueprint("request_sender", __name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}

# never relayed: they describe the upstream connection, not the payload.
# Content-Length is recomputed by the server for the same bytes.
HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "content-length",
}


# ---------- building ----------

def stringify_param(key: str, value: Any) -> str:
    if isinstance(value, str):
        return value
    # bool is an int subclass but has no decimal form in a query string
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise UnsupportedParamError(
        f"parameter {key!r}: unsupported type {type(value).__name__} for a query string"
    )


def merge_query(url: str, query_params: Mapping[str, Any]) -> str:
    """Replaces or appends ``query_params``; untouched pairs keep their original text."""
    parts = urlsplit(url)
    kept = [
        seg for seg in parts.query.split("&")
        if seg and unquote_plus(seg.split("=", 1)[0]) not in query_params
    ]
    added = urlencode([(k, stringify_param(k, v)) for k, v in query_params.items()])
    return urlunsplit(parts._replace(query="&".join(kept + [added])))


def build_request(
    method: str,
    url: str,
    body: Optional[bytes] = None,
    query_params: Optional[Mapping[str, Any]] = None,
) -> requests.PreparedRequest:
    """
    GET puts the parameters into the query string and sends no body,
    every other method sends ``body`` to ``url`` as is.
    """
    method = method.upper()
    try:
        if method == "GET":
            if query_params:
                url = merge_query(url, query_params)
            req = requests.Request(method, url, headers=dict(DEFAULT_HEADERS))
        else:
            req = requests.Request(method, url, headers=dict(DEFAULT_HEADERS), data=body or b"")
        return req.prepare()
    except (ValueError, requests.RequestException) as e:
        raise RequestBuildError(f"cannot build request to {url}: {e}") from e


# ---------- executing ----------

def execute_request(
    prepared: requests.PreparedRequest, timeout: float
) -> Tuple[int, List[Tuple[str, str]], bytes]:
    """Sends the request and returns (status, headers, raw body bytes)."""
    with requests.Session() as session:
        try:
            resp = session.send(prepared, timeout=timeout, stream=True)
        except requests.RequestException as e:
            raise UpstreamTransportError(str(e)) from e

        try:
            # raw bytes, Content-Encoding is relayed with them
            body = resp.raw.read(decode_content=False)
        except (Urllib3HTTPError, requests.RequestException, OSError) as e:
            raise UpstreamBodyReadError(f"failed to read upstream body: {e}") from e
        finally:
            resp.close()

        headers = list(resp.raw.headers.items())
        return resp.status_code, headers, body


def relay(status: int, headers: List[Tuple[str, str]], body: bytes) -> Response:
    response = Response(body, status=status)
    del response.headers["Content-Type"]
    for k, v in headers:
        if k.lower() not in HOP_BY_HOP:
            response.headers.add(k, v)
    return response


# ---------- endpoint ----------

def _parse_invocation(payload: Any):
    if not isinstance(payload, dict):
        raise MalformedRequestError("request body must be a JSON object")

    params = payload.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise MalformedRequestError("'params' must be a JSON object")

    if "id" in payload and payload["id"] is not None:
        index = payload["id"]
        if not isinstance(index, int) or isinstance(index, bool):
            raise MalformedRequestError("'id' must be an integer")
        return None, index, params

    name = payload.get("name")
    if not isinstance(name, str):
        raise MalformedRequestError("'name' (string) or 'id' (integer) is required")
    return name, None, params


@bp.route("/send-request", methods=["POST"])
def send():
    name, index, params = _parse_invocation(request.get_json(force=True, silent=True))
    tpl = find_template(current_app.extensions["request_templates"], name=name, index=index)

    body = json.dumps(params, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    prepared = build_request(tpl.method, tpl.url, body, params)

    status, headers, content = execute_request(prepared, current_app.config["UPSTREAM_TIMEOUT"])
    logger.info("%s %s (%s) -> %d, %d bytes", prepared.method, prepared.url, tpl.name, status, len(content))
    return relay(status, headers, content)


service = ServiceBase(
    id="request-sender",
    blueprint=bp,
    url_prefix="",
)
