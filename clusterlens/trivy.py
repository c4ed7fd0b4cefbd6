"""Trivy integration: installs the Trivy operator and analyzes its reports."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any, Optional

from clusterlens.helm import ChartRepo, ChartSpec, HelmClient, env_or_default
from clusterlens.kube import AnalysisContext, Failure, ObjectMeta, Result, Sensitive
from clusterlens.settings import Settings, filters_active
from clusterlens.util import get_parent, mask_string

REPO = env_or_default("TRIVY_REPO", "https://aquasecurity.github.io/helm-charts/")
VERSION = env_or_default("TRIVY_VERSION", "0.13.0")
CHART_NAME = env_or_default("TRIVY_CHART_NAME", "trivy-operator")
REPO_SHORT_NAME = env_or_default("TRIVY_REPO_SHORT_NAME", "aqua")
RELEASE_NAME = env_or_default("TRIVY_RELEASE_NAME", "trivy-operator-k8sgpt")

VULNERABILITY_REPORT = "VulnerabilityReport"
CONFIG_AUDIT_REPORT = "ConfigAuditReport"

_API_GROUP = "aquasecurity.github.io"
_AUDIT_SEVERITIES = frozenset({"MEDIUM", "HIGH", "CRITICAL"})


def _report_key(report: Mapping[str, Any]) -> str:
    meta = report.get("metadata") or {}
    return f"{meta.get('namespace', '')}/{meta.get('name', '')}"


def _report_body(report: Mapping[str, Any]) -> dict:
    return report.get("report") or {}


@dataclass
class TrivyAnalyzer:
    """Turns Trivy vulnerability or config audit reports into results."""

    vulnerability_report_analysis: bool = False
    config_audit_report_analysis: bool = False

    def analyze(self, context: AnalysisContext) -> list:
        """Return the context's earlier results followed by the ones found here."""
        if self.vulnerability_report_analysis:
            return self._analyze_vulnerability_reports(context)
        if self.config_audit_report_analysis:
            return self._analyze_config_audit_reports(context)
        return []

    @staticmethod
    def _collect(context: AnalysisContext, kind: str, pre_analysis: Mapping[str, tuple]) -> list:
        results = list(context.results)
        for key, (report, failures) in pre_analysis.items():
            parent, _ = get_parent(context.client, ObjectMeta.from_dict(report))
            results.append(Result(kind=kind, name=key, error=failures, parent_object=parent))
        return results

    def _analyze_vulnerability_reports(self, context: AnalysisContext) -> list:
        pre_analysis: dict = {}
        for report in context.client.list(VULNERABILITY_REPORT, ""):
            distinct: dict = {}
            for vuln in _report_body(report).get("vulnerabilities") or ():
                if vuln.get("severity") != "CRITICAL":
                    continue
                text = (
                    f"critical Vulnerability found ID: {vuln.get('vulnerabilityID', '')} "
                    f"(learn more at: {vuln.get('primaryLink', '')})"
                )
                distinct[text] = Failure(text=text, sensitive=[])
            if distinct:
                pre_analysis[_report_key(report)] = (report, list(distinct.values()))
        return self._collect(context, VULNERABILITY_REPORT, pre_analysis)

    def _analyze_config_audit_reports(self, context: AnalysisContext) -> list:
        pre_analysis: dict = {}
        for report in context.client.list(CONFIG_AUDIT_REPORT, ""):
            labels = (report.get("metadata") or {}).get("labels") or {}
            resource_name = labels.get("trivy-operator.resource.name", "")
            resource_namespace = labels.get("trivy-operator.resource.namespace", "")
            failures = []
            for check in _report_body(report).get("checks") or ():
                severity = check.get("severity", "")
                if severity not in _AUDIT_SEVERITIES:
                    continue
                messages = "".join(check.get("messages") or ())
                failures.append(
                    Failure(
                        text=f'Config issue with severity "{severity}" found: {messages}',
                        sensitive=[
                            Sensitive(unmasked=resource_name, masked=mask_string(resource_name)),
                            Sensitive(
                                unmasked=resource_namespace,
                                masked=mask_string(resource_namespace),
                            ),
                        ],
                    )
                )
            if failures:
                pre_analysis[_report_key(report)] = (report, failures)
        return self._collect(context, CONFIG_AUDIT_REPORT, pre_analysis)


class Trivy:
    """Integration that installs the Trivy operator and reads its reports."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        helm: Optional[HelmClient] = None,
        client_factory: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.helm = helm if helm is not None else HelmClient()
        self.client_factory = client_factory

    def analyzer_names(self) -> list:
        """Return the names of the analyzers this integration provides."""
        return [VULNERABILITY_REPORT, CONFIG_AUDIT_REPORT]

    def get_namespace(self) -> str:
        """Return the namespace the Trivy release is installed in."""
        for release in self.helm.list_deployed_releases():
            if release.name == RELEASE_NAME:
                return release.namespace
        raise LookupError("trivy release not found")

    def owns_analyzer(self, analyzer: str) -> bool:
        """Return whether ``analyzer`` belongs to this integration."""
        return analyzer in self.analyzer_names()

    def _chart_spec(self, namespace: str, create_namespace: bool) -> ChartSpec:
        return ChartSpec(
            release_name=RELEASE_NAME,
            chart_name=f"{REPO_SHORT_NAME}/{CHART_NAME}",
            namespace=namespace,
            upgrade_crds=True,
            wait=False,
            timeout=300,
            create_namespace=create_namespace,
        )

    def deploy(self, namespace: str) -> None:
        """Install or upgrade the Trivy operator chart in ``namespace``."""
        self.helm.add_or_update_chart_repo(ChartRepo(name=REPO_SHORT_NAME, url=REPO))
        self.helm.install_or_upgrade_chart(self._chart_spec(namespace, True))

    def undeploy(self, namespace: str) -> None:
        """Uninstall the Trivy operator release from ``namespace``."""
        self.helm.uninstall_release(self._chart_spec(namespace, False))

    def _is_deployed(self) -> bool:
        if self.client_factory is None:
            raise RuntimeError(
                "Error initialising kubernetes client: no client factory configured"
            )
        try:
            client = self.client_factory(
                self.settings.get("kubecontext", ""), self.settings.get("kubeconfig", "")
            )
        except Exception as exc:
            raise RuntimeError(f"Error initialising kubernetes client: {exc}") from exc
        try:
            groups = client.api_groups()
        except Exception as exc:
            raise RuntimeError(f"Error initialising discovery client: {exc}") from exc
        return _API_GROUP in groups

    def is_activate(self) -> bool:
        """Return whether a filter is active and the Trivy API group is served."""
        return filters_active(self.settings, self.analyzer_names()) and self._is_deployed()

    def add_analyzer(self, analyzers: MutableMapping[str, Any]) -> None:
        """Register this integration's analyzers by name."""
        analyzers[VULNERABILITY_REPORT] = TrivyAnalyzer(vulnerability_report_analysis=True)
        analyzers[CONFIG_AUDIT_REPORT] = TrivyAnalyzer(config_audit_report_analysis=True)