from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from flask import Blueprint

@dataclass
class ServiceBase:
    id: str                    # URL-safe id, e.g. "request-sender"
    blueprint: Optional[Blueprint] = None  # Flask blueprint, if the service has UI/API
    url_prefix: Optional[str] = None       # None -> mounted under /services/<id>

    def mount_point(self) -> str:
        if self.url_prefix is not None:
            return self.url_prefix
        return f"/services/{self.id}"
