"""Kyverno integration: analyzes policy reports produced by Kyverno."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any, Optional

from clusterlens.kube import AnalysisContext, Failure, ObjectMeta, Result
from clusterlens.settings import Settings, filters_active
from clusterlens.util import get_parent

POLICY_REPORT = "PolicyReport"
CLUSTER_POLICY_REPORT = "ClusterPolicyReport"

_API_GROUP = "kyverno.io"


def _report_key(report: Mapping[str, Any]) -> str:
    meta = report.get("metadata") or {}
    return f"{meta.get('namespace', '')}/{meta.get('name', '')}"


@dataclass
class KyvernoAnalyzer:
    """Turns Kyverno policy reports or cluster policy reports into results."""

    policy_report_analysis: bool = False
    cluster_report_analysis: bool = False

    def analyze(self, context: AnalysisContext) -> list:
        """Return the context's earlier results followed by the ones found here."""
        if self.policy_report_analysis:
            return self._analyze_policy_reports(context)
        if self.cluster_report_analysis:
            return self._analyze_cluster_policy_reports(context)
        return []

    @staticmethod
    def _collect(context: AnalysisContext, kind: str, pre_analysis: Mapping[str, tuple]) -> list:
        results = list(context.results)
        for key, (report, failures) in pre_analysis.items():
            parent, _ = get_parent(context.client, ObjectMeta.from_dict(report))
            results.append(Result(kind=kind, name=key, error=failures, parent_object=parent))
        return results

    def _analyze_policy_reports(self, context: AnalysisContext) -> list:
        pre_analysis: dict = {}
        for report in context.client.list(POLICY_REPORT, ""):
            failures = [
                Failure(
                    text=(
                        f"policy failure: {entry.get('policy', '')} "
                        f"(message: {entry.get('message', '')})"
                    ),
                    sensitive=[],
                )
                for entry in report.get("results") or ()
                if entry.get("result") == "fail"
            ]
            if failures:
                pre_analysis[_report_key(report)] = (report, failures)
        return self._collect(context, POLICY_REPORT, pre_analysis)

    def _analyze_cluster_policy_reports(self, context: AnalysisContext) -> list:
        pre_analysis: dict = {}
        for report in context.client.list(CLUSTER_POLICY_REPORT, ""):
            failures = [
                Failure(
                    text=(
                        f"critical Vulnerability found ID: {entry.get('id', '')} "
                        f"(learn more at: {entry.get('source', '')})"
                    ),
                    sensitive=[],
                )
                for entry in report.get("results") or ()
                if entry.get("severity") == "CRITICAL"
            ]
            if failures:
                pre_analysis[_report_key(report)] = (report, failures)
        return self._collect(context, CLUSTER_POLICY_REPORT, pre_analysis)


class Kyverno:
    """Integration that reads the policy reports of an existing Kyverno installation."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.client_factory = client_factory

    def analyzer_names(self) -> list:
        """Return the names of the analyzers this integration provides."""
        return [POLICY_REPORT, CLUSTER_POLICY_REPORT]

    def owns_analyzer(self, analyzer: str) -> bool:
        """Return whether ``analyzer`` belongs to this integration."""
        return analyzer in self.analyzer_names()

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
        """Return whether a filter is active and the Kyverno API group is served."""
        return filters_active(self.settings, self.analyzer_names()) and self._is_deployed()

    def add_analyzer(self, analyzers: MutableMapping[str, Any]) -> None:
        """Register this integration's analyzers by name."""
        analyzers[POLICY_REPORT] = KyvernoAnalyzer(policy_report_analysis=True)
        analyzers[CLUSTER_POLICY_REPORT] = KyvernoAnalyzer(cluster_report_analysis=True)

    def deploy(self, namespace: str) -> None:
        """Nothing is installed; Kyverno must already be running."""

    def undeploy(self, namespace: str) -> None:
        """Nothing is removed from the cluster."""

    def get_namespace(self) -> str:
        """Return the namespace this integration installed into; always empty."""
        return ""