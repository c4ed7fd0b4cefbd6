import pytest

from clusterlens.kube import AnalysisContext, InMemoryCluster, Result
from clusterlens.kyverno import Kyverno, KyvernoAnalyzer
from clusterlens.settings import Settings


def _policy_report(name, namespace, results):
    return {
        "apiVersion": "wgpolicyk8s.io/v1alpha2",
        "kind": "PolicyReport",
        "metadata": {"name": name, "namespace": namespace},
        "results": results,
    }


def _cluster_report(name, results):
    return {
        "apiVersion": "wgpolicyk8s.io/v1alpha2",
        "kind": "ClusterPolicyReport",
        "metadata": {"name": name},
        "results": results,
    }


def test_policy_report_failures_become_results():
    cluster = InMemoryCluster(
        [
            _policy_report(
                "pol-1",
                "default",
                [
                    {"policy": "require-labels", "message": "missing label", "result": "fail"},
                    {"policy": "other", "message": "ok", "result": "pass"},
                ],
            ),
            _policy_report("pol-2", "default", [{"policy": "p", "message": "m", "result": "pass"}]),
        ]
    )
    results = KyvernoAnalyzer(policy_report_analysis=True).analyze(AnalysisContext(client=cluster))
    assert len(results) == 1
    assert results[0].kind == "PolicyReport"
    assert results[0].name == "default/pol-1"
    assert [f.text for f in results[0].error] == [
        "policy failure: require-labels (message: missing label)"
    ]
    assert results[0].parent_object == ""


def test_cluster_policy_report_criticals():
    cluster = InMemoryCluster(
        [
            _cluster_report(
                "cpol",
                [
                    {"id": "CVE-1", "source": "scanner", "severity": "CRITICAL"},
                    {"id": "CVE-2", "source": "scanner", "severity": "LOW"},
                ],
            )
        ]
    )
    results = KyvernoAnalyzer(cluster_report_analysis=True).analyze(AnalysisContext(client=cluster))
    assert len(results) == 1
    assert results[0].kind == "ClusterPolicyReport"
    assert results[0].name == "/cpol"
    assert [f.text for f in results[0].error] == [
        "critical Vulnerability found ID: CVE-1 (learn more at: scanner)"
    ]


def test_earlier_results_are_kept_first():
    earlier = Result(kind="Pod", name="default/x")
    cluster = InMemoryCluster(
        [_policy_report("a", "ns", [{"policy": "p", "message": "m", "result": "fail"}])]
    )
    context = AnalysisContext(client=cluster, results=[earlier])
    results = KyvernoAnalyzer(policy_report_analysis=True).analyze(context)
    assert results[0] is earlier
    assert [r.name for r in results] == ["default/x", "ns/a"]


def test_analyzer_without_mode_returns_nothing():
    cluster = InMemoryCluster(
        [_policy_report("a", "ns", [{"policy": "p", "message": "m", "result": "fail"}])]
    )
    assert KyvernoAnalyzer().analyze(AnalysisContext(client=cluster)) == []


def test_names_and_ownership():
    kyverno = Kyverno()
    assert kyverno.analyzer_names() == ["PolicyReport", "ClusterPolicyReport"]
    assert kyverno.owns_analyzer("PolicyReport")
    assert kyverno.owns_analyzer("ClusterPolicyReport")
    assert not kyverno.owns_analyzer("VulnerabilityReport")
    assert kyverno.get_namespace() == ""


def test_add_analyzer_registers_both_modes():
    analyzers = {}
    Kyverno().add_analyzer(analyzers)
    assert set(analyzers) == {"PolicyReport", "ClusterPolicyReport"}
    assert analyzers["PolicyReport"].policy_report_analysis
    assert analyzers["ClusterPolicyReport"].cluster_report_analysis


def test_is_activate_needs_filter_and_api_group():
    served = InMemoryCluster(
        [{"apiVersion": "kyverno.io/v1", "kind": "ClusterPolicy", "metadata": {"name": "p"}}]
    )
    unserved = InMemoryCluster(
        [{"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p", "namespace": "d"}}]
    )
    active = Settings({"active_filters": ["PolicyReport"]})
    assert Kyverno(active, lambda ctx, cfg: served).is_activate() is True
    assert Kyverno(active, lambda ctx, cfg: unserved).is_activate() is False
    inactive = Settings({"active_filters": ["Pod"]})
    assert Kyverno(inactive, lambda ctx, cfg: served).is_activate() is False


def test_is_activate_without_client_factory_raises():
    kyverno = Kyverno(Settings({"active_filters": ["ClusterPolicyReport"]}))
    with pytest.raises(RuntimeError, match="Error initialising kubernetes client"):
        kyverno.is_activate()


def test_deploy_and_undeploy_leave_cluster_untouched():
    kyverno = Kyverno()
    assert kyverno.deploy("ns") is None
    assert kyverno.undeploy("ns") is None
    assert kyverno.get_namespace() == ""