"""Cluster object model, analysis result types and an in-memory cluster store."""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional


class NotFoundError(LookupError):
    """Raised when a requested cluster object does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f'{kind} "{name}" not found')
        self.kind = kind
        self.name = name


@dataclass(frozen=True)
class OwnerReference:
    """A reference from an object to the object that owns it."""

    kind: str
    name: str


@dataclass
class ObjectMeta:
    """The metadata block shared by every cluster object."""

    name: str = ""
    namespace: str = ""
    labels: dict = field(default_factory=dict)
    annotations: dict = field(default_factory=dict)
    owner_references: Optional[list] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ObjectMeta":
        """Build metadata from a whole object or from its ``metadata`` mapping."""
        meta = data["metadata"] if "metadata" in data else data
        meta = meta or {}
        raw_owners = meta.get("ownerReferences")
        owners = None
        if raw_owners is not None:
            owners = [
                OwnerReference(kind=ref.get("kind", ""), name=ref.get("name", ""))
                for ref in raw_owners
            ]
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            labels=dict(meta.get("labels") or {}),
            annotations=dict(meta.get("annotations") or {}),
            owner_references=owners,
        )


@dataclass(frozen=True)
class Sensitive:
    """A value that must be masked before leaving the cluster."""

    unmasked: str
    masked: str


@dataclass
class Failure:
    """One problem found by an analyzer."""

    text: str
    kubernetes_doc: str = ""
    sensitive: list = field(default_factory=list)


@dataclass
class Result:
    """The problems found for one object."""

    kind: str
    name: str
    error: list = field(default_factory=list)
    parent_object: str = ""


@dataclass
class AnalysisContext:
    """Everything an analyzer needs to inspect a cluster."""

    client: Any
    namespace: str = ""
    label_selector: str = ""
    openapi_schema: Optional[Mapping[str, Any]] = None
    results: list = field(default_factory=list)


class InMemoryCluster:
    """A cluster held in memory, with objects stored as manifest mappings."""

    def __init__(self, objects: Iterable[Mapping[str, Any]] = ()) -> None:
        self._objects: dict = {}
        for obj in objects:
            self.add(obj)

    @staticmethod
    def _key(obj: Mapping[str, Any]) -> tuple:
        kind = obj.get("kind")
        if not kind:
            raise ValueError("object has no kind")
        meta = obj.get("metadata") or {}
        return kind, meta.get("namespace", ""), meta.get("name", "")

    def add(self, obj: Mapping[str, Any]) -> None:
        """Store an object, replacing any object with the same kind, namespace and name."""
        self._objects[self._key(obj)] = copy.deepcopy(dict(obj))

    def get(self, kind: str, namespace: str, name: str) -> dict:
        """Return a copy of one object; cluster-scoped objects use an empty namespace."""
        try:
            return copy.deepcopy(self._objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind, name) from None

    def list(
        self,
        kind: str,
        namespace: str = "",
        label_selector: Optional[Mapping[str, str]] = None,
    ) -> "list[dict]":
        """Return objects of a kind, in all namespaces when ``namespace`` is empty."""
        selector = dict(label_selector or {})
        found = []
        for (obj_kind, obj_namespace, _), obj in self._objects.items():
            if obj_kind != kind or (namespace and obj_namespace != namespace):
                continue
            labels = (obj.get("metadata") or {}).get("labels") or {}
            if all(labels.get(key) == value for key, value in selector.items()):
                found.append(copy.deepcopy(obj))
        return found

    def delete(self, kind: str, namespace: str, name: str) -> None:
        """Remove one object."""
        try:
            del self._objects[(kind, namespace, name)]
        except KeyError:
            raise NotFoundError(kind, name) from None

    def api_groups(self) -> "list[str]":
        """Return the sorted API group names served by the stored objects."""
        groups = set()
        for obj in self._objects.values():
            api_version = obj.get("apiVersion", "")
            group, _, _ = api_version.rpartition("/")
            groups.add(group)
        return sorted(groups)