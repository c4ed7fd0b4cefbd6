"""Helpers shared by analyzers and integrations."""

from __future__ import annotations

import base64
import hashlib
import os
import re
import secrets
import string
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from clusterlens.kube import NotFoundError, ObjectMeta

_ANONYMIZE_PATTERN = (
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    "!@#$%^&*()-_=+[]{}|;':\",./<>?"
)

# owner kind -> (label used in the parent name, namespaced)
_PARENT_KINDS = {
    "ReplicaSet": ("ReplicaSet", True),
    "Deployment": ("Deployment", True),
    "StatefulSet": ("StatefulSet", True),
    "DaemonSet": ("DaemonSet", True),
    "Ingress": ("Ingress", True),
    "MutatingWebhookConfiguration": ("MutatingWebhook", False),
    "ValidatingWebhookConfiguration": ("ValidatingWebhook", False),
}

_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")
_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


def get_parent(client: Any, meta: ObjectMeta) -> tuple:
    """Follow owner references to the top-level owner; return ``(name, found)``."""
    for owner in meta.owner_references or ():
        spec = _PARENT_KINDS.get(owner.kind)
        if spec is None:
            continue
        label, namespaced = spec
        try:
            obj = client.get(owner.kind, meta.namespace if namespaced else "", owner.name)
        except NotFoundError:
            return "", False
        parent = ObjectMeta.from_dict(obj)
        if parent.owner_references is not None:
            return get_parent(client, parent)
        return f"{label}/{parent.name}", True
    return "", False


def remove_duplicates(items: Iterable[str]) -> tuple:
    """Return ``(unique, duplicates)``; unique keeps first-seen order."""
    seen: dict = {}
    duplicates = []
    for item in items:
        if item in seen:
            duplicates.append(item)
        else:
            seen[item] = True
    return list(seen), duplicates


def slice_diff(source: Iterable[str], dest: Iterable[str]) -> list:
    """Return the items of ``source`` that are not in ``dest``."""
    excluded = set(dest)
    return [item for item in source if item not in excluded]


def mask_string(text: str) -> str:
    """Replace a string with random characters of the same byte length, base64 encoded."""
    key = secrets.token_bytes(len(text.encode("utf-8")))
    masked = "".join(_ANONYMIZE_PATTERN[b % len(_ANONYMIZE_PATTERN)] for b in key)
    return base64.b64encode(masked.encode("utf-8")).decode("ascii")


def replace_if_match(text: str, pattern: str, replacement: str) -> str:
    """Replace every match of ``pattern`` that ends at a word boundary."""
    regex = re.compile(rf"{pattern}(\b)", re.ASCII)
    return regex.sub(lambda _match: replacement, text)


def get_cache_key(provider: str, language: str, s_enc: str) -> str:
    """Return the hex SHA-256 of ``provider-language-s_enc``."""
    data = f"{provider}-{language}-{s_enc}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def get_pod_list_by_labels(client: Any, namespace: str, labels: Mapping[str, str]) -> list:
    """Return the pods in ``namespace`` whose labels match all of ``labels``."""
    return client.list("Pod", namespace, labels)


def file_exists(path: str) -> bool:
    """Return whether ``path`` exists; other stat errors propagate."""
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    return True


def ensure_dir_exists(directory: str) -> None:
    """Create ``directory`` and its parents if they are missing."""
    os.makedirs(directory, mode=0o755, exist_ok=True)


def map_to_string(mapping: Mapping[str, str]) -> str:
    """Render a mapping as ``k=v`` pairs joined by commas."""
    return ",".join(f"{key}={value}" for key, value in mapping.items())


def labels_include_any(predefined_selector: Mapping[str, str], labels: Mapping[str, str]) -> bool:
    """Return whether any key of the selector is present among ``labels``."""
    return any(key in labels for key in predefined_selector)


def _event_time(event: Mapping[str, Any]) -> datetime:
    raw = event.get("lastTimestamp")
    if not raw:
        return _ZERO_TIME
    stamp = raw if isinstance(raw, datetime) else datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def fetch_latest_event(client: Any, namespace: str, name: str) -> Optional[dict]:
    """Return the most recent event about the object called ``name``, or None."""
    latest = None
    for event in client.list("Event", namespace):
        if (event.get("involvedObject") or {}).get("name") != name:
            continue
        if latest is None or _event_time(event) > _event_time(latest):
            latest = event
    return latest


def _canonical_header_key(key: str) -> str:
    if not key or any(char not in _TOKEN_CHARS for char in key):
        return key
    chars = []
    upper = True
    for char in key:
        if upper and "a" <= char <= "z":
            char = char.upper()
        elif not upper and "A" <= char <= "Z":
            char = char.lower()
        chars.append(char)
        upper = char == "-"
    return "".join(chars)


def new_headers(custom_headers: Iterable[str]) -> list:
    """Parse ``key:value`` strings into one header mapping per key; malformed entries are skipped."""
    grouped: dict = {}
    for header in custom_headers:
        key, sep, value = header.partition(":")
        if not sep:
            continue
        grouped.setdefault(key.strip(), []).append(value.strip())
    return [{_canonical_header_key(key): values} for key, values in grouped.items()]


def label_str_to_selector(label_str: str) -> Optional[dict]:
    """Parse ``k=v,k2=v2`` into a selector mapping; an empty string gives None."""
    if label_str == "":
        return None
    selector = {}
    for part in label_str.split(","):
        key, sep, value = part.partition("=")
        if sep:
            selector[key] = value
    return selector