from __future__ import annotations


class ProxyError(Exception):
    """Per-request failure, rendered as ``{"error": ...}`` with ``status_code``."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class MalformedRequestError(ProxyError):
    status_code = 400


class UnsupportedParamError(MalformedRequestError):
    pass


class TemplateNotFoundError(ProxyError):
    status_code = 400


class RequestBuildError(ProxyError):
    status_code = 502


class UpstreamTransportError(ProxyError):
    status_code = 502


class UpstreamBodyReadError(ProxyError):
    status_code = 502


class ConfigLoadError(Exception):
    """The request templates file could not be loaded. Fatal at startup."""


class ConfigReadError(ConfigLoadError):
    pass


class ConfigParseError(ConfigLoadError):
    pass
