from __future__ import annotations
import datetime
import logging

from flask import Blueprint, jsonify, request

from .base import ServiceBase

logger = logging.getLogger(__name__)

bp = Blueprint("diagnostics", __name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _now() -> str:
    return datetime.datetime.now().strftime(TIME_FORMAT)


@bp.route("/hello")
def hello():
    return jsonify("hello")


@bp.route("/hello_json")
def hello_json():
    return jsonify({"hello": _now()})


@bp.route("/post_json", methods=["POST"])
def post_json():
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        logger.warning("post_json: body is not a JSON object")
        return jsonify({"error": "body must be a JSON object"}), 400

    value2 = payload.get("value2", 0)
    value3 = payload.get("value3", "")
    if not isinstance(value2, int) or isinstance(value2, bool) or not isinstance(value3, str):
        logger.warning("post_json: bad parameters value2=%r value3=%r", value2, value3)
        return jsonify({"error": "value2 must be an integer and value3 a string"}), 400

    return jsonify({"hello": _now(), "value2": value2, "value3": value3})


service = ServiceBase(
    id="diagnostics",
    blueprint=bp,
    url_prefix="",
)
