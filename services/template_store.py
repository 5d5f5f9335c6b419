from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import yaml

from .errors import ConfigParseError, ConfigReadError, TemplateNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestTemplate:
    name: str
    method: str
    url: str
    params: Mapping[str, Any] = field(default_factory=dict)
    download: bool = False

    def __post_init__(self):
        # read-only view, the tuple of templates is shared by all handlers
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def to_dict(self, index: Optional[int] = None) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "method": self.method,
            "url": self.url,
            "params": dict(self.params),
            "download": self.download,
        }
        if index is not None:
            data = {"id": index, **data}
        return data


# ---------- parsing ----------

def _parse_item(i: int, item: Any) -> RequestTemplate:
    if not isinstance(item, dict):
        raise ConfigParseError(f"entry #{i}: expected a mapping, got {type(item).__name__}")

    for key in ("name", "method", "url"):
        if not isinstance(item.get(key), str) or not item[key].strip():
            raise ConfigParseError(f"entry #{i}: '{key}' must be a non-empty string")

    params = item.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict) or not all(isinstance(k, str) for k in params):
        raise ConfigParseError(f"entry #{i} ({item['name']}): 'params' must be a mapping with string keys")

    download = item.get("download", False)
    if not isinstance(download, bool):
        raise ConfigParseError(f"entry #{i} ({item['name']}): 'download' must be true or false")

    return RequestTemplate(
        name=item["name"],
        method=item["method"],
        url=item["url"],
        params=params,
        download=download,
    )


def _warn_duplicates(templates: Iterable[RequestTemplate]) -> None:
    seen = set()
    for t in templates:
        if t.name in seen:
            logger.warning("duplicate request template name: %s", t.name)
        else:
            seen.add(t.name)


# ---------- operations ----------

def load_all(path: str) -> Tuple[RequestTemplate, ...]:
    """
    Reads the YAML list of request templates.
    Duplicated names are reported but kept; the order of the file is preserved.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigReadError(f"cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"invalid YAML in {path}: {e}") from e

    if data is None:
        data = []
    if not isinstance(data, list):
        raise ConfigParseError(f"{path}: expected a list of request templates")

    templates = tuple(_parse_item(i, item) for i, item in enumerate(data))
    _warn_duplicates(templates)
    logger.info("loaded %d request templates from %s", len(templates), path)
    return templates


def find_template(
    templates: Tuple[RequestTemplate, ...],
    name: Optional[str] = None,
    index: Optional[int] = None,
) -> RequestTemplate:
    """Looks a template up by position (``index``) or by name, first match wins."""
    if index is not None:
        if 0 <= index < len(templates):
            return templates[index]
        raise TemplateNotFoundError(f"no request template with id {index}")

    for t in templates:
        if t.name == name:
            return t
    raise TemplateNotFoundError(f"no request template named {name!r}")


def get_path(path: str) -> str:
    """Used only for display in the UI."""
    return os.path.basename(path) or path
