"""Look up field documentation in an OpenAPI v2 document."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional


def _is_string(schema: Mapping[str, Any]) -> bool:
    kind = schema.get("type")
    if isinstance(kind, (list, tuple)):
        return list(kind) == ["string"]
    return kind == "string"


def _items(schema: Mapping[str, Any]) -> list:
    items = schema.get("items")
    if items is None:
        return []
    if isinstance(items, Mapping):
        return [items]
    return list(items)


def _ref_name(schema: Optional[Mapping[str, Any]]) -> str:
    return ((schema or {}).get("$ref") or "").split("/")[-1]


@dataclass
class ApiReference:
    """An API kind together with the OpenAPI v2 document that describes it."""

    kind: str
    group: str = ""
    version: str = ""
    openapi_schema: Optional[Mapping[str, Any]] = None

    def get_api_doc_v2(self, field: str) -> str:
        """Return the description of a dotted field path such as ``spec.replicas``."""
        paths = field.split(".")
        group = self.group.split(".")[0]
        suffix = f"{group}.{self.version}.{self.kind}"
        definitions = (self.openapi_schema or {}).get("definitions") or {}
        start = next((name for name in definitions if name.endswith(suffix)), "")
        return self._recurse_path(definitions, start, paths)

    def _recurse_path(self, definitions: Mapping[str, Any], leaf: str, paths: list) -> str:
        if leaf not in definitions:
            return ""
        properties = (definitions[leaf] or {}).get("properties") or {}
        if paths[0] not in properties:
            return ""
        prop = properties[paths[0]] or {}
        if len(paths) == 1 or _is_string(prop):
            return prop.get("description", "")

        description = ""
        if prop.get("$ref"):
            description = self._recurse_path(definitions, _ref_name(prop), paths[1:])
        items = _items(prop)
        if len(items) == 1:
            description = self._recurse_path(definitions, _ref_name(items[0]), paths[1:])
        return description