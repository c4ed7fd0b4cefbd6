"""Chart repositories, chart specifications and an in-process release manager."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Optional

_DEFAULT_NAMESPACE = "default"


class HelmError(Exception):
    """Raised when a chart repository or release operation fails."""


def env_or_default(key: str, default: str) -> str:
    """Return the environment variable ``key``, or ``default`` when unset or empty."""
    value = os.environ.get(key, "")
    return value if value else default


@dataclass(frozen=True)
class ChartRepo:
    """A named chart repository."""

    name: str
    url: str


@dataclass(frozen=True)
class ChartSpec:
    """What to install: a release name, a ``repo/chart`` reference and options."""

    release_name: str
    chart_name: str
    namespace: str = ""
    version: str = ""
    upgrade_crds: bool = False
    wait: bool = False
    timeout: int = 300
    create_namespace: bool = False


@dataclass(frozen=True)
class Release:
    """An installed chart."""

    name: str
    namespace: str
    chart: str
    version: str = ""
    revision: int = 1


def _normalise_url(url: str) -> str:
    return url.rstrip("/")


class HelmClient:
    """Keeps track of chart repositories and installed releases.

    ``catalog`` maps a repository URL to the chart names it serves; a chart
    can only be installed from a registered repository that serves it.
    """

    def __init__(self, catalog: Optional[Mapping[str, Iterable[str]]] = None) -> None:
        self._catalog = {
            _normalise_url(url): set(charts) for url, charts in (catalog or {}).items()
        }
        self._repos: dict = {}
        self._releases: dict = {}

    def add_or_update_chart_repo(self, repo: ChartRepo) -> None:
        """Register a repository, replacing any repository of the same name."""
        if not repo.name:
            raise HelmError("repository name must not be empty")
        if not repo.url:
            raise HelmError(f"repository {repo.name} has no URL")
        self._repos[repo.name] = repo

    def _resolve(self, chart_name: str) -> tuple:
        repo_name, sep, chart = chart_name.partition("/")
        if not sep or not repo_name or not chart:
            raise HelmError(f"chart reference must be repo/chart: {chart_name}")
        repo = self._repos.get(repo_name)
        if repo is None:
            raise HelmError(f"repo {repo_name} not found")
        if chart not in self._catalog.get(_normalise_url(repo.url), set()):
            raise HelmError(f'chart "{chart}" not found in {repo.url} repository')
        return repo, chart

    def install_or_upgrade_chart(self, spec: ChartSpec) -> Release:
        """Install a release, or upgrade it when it is already installed."""
        if not spec.release_name:
            raise HelmError("release name must not be empty")
        if spec.timeout < 0:
            raise HelmError("timeout must not be negative")
        self._resolve(spec.chart_name)
        namespace = spec.namespace or _DEFAULT_NAMESPACE
        key = (namespace, spec.release_name)
        current = self._releases.get(key)
        if current is None:
            release = Release(
                name=spec.release_name,
                namespace=namespace,
                chart=spec.chart_name,
                version=spec.version,
            )
        else:
            release = replace(
                current,
                chart=spec.chart_name,
                version=spec.version,
                revision=current.revision + 1,
            )
        self._releases[key] = release
        return release

    def uninstall_release(self, spec: ChartSpec) -> None:
        """Remove the release named by ``spec`` from its namespace."""
        namespace = spec.namespace or _DEFAULT_NAMESPACE
        try:
            del self._releases[(namespace, spec.release_name)]
        except KeyError:
            raise HelmError(f"uninstall: release {spec.release_name}: not found") from None

    def list_deployed_releases(self) -> list:
        """Return every installed release, oldest installation first."""
        return list(self._releases.values())