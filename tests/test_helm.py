import pytest

from clusterlens.helm import ChartRepo, ChartSpec, HelmClient, HelmError, env_or_default

REPO_URL = "https://charts.example.com/"


def _client():
    helm = HelmClient({REPO_URL: ["operator"]})
    helm.add_or_update_chart_repo(ChartRepo(name="example", url=REPO_URL))
    return helm


def test_env_or_default_uses_environment(monkeypatch):
    monkeypatch.setenv("CLUSTERLENS_TEST_VALUE", "from-env")
    assert env_or_default("CLUSTERLENS_TEST_VALUE", "fallback") == "from-env"


def test_env_or_default_falls_back_when_empty(monkeypatch):
    monkeypatch.setenv("CLUSTERLENS_TEST_VALUE", "")
    assert env_or_default("CLUSTERLENS_TEST_VALUE", "fallback") == "fallback"


def test_env_or_default_falls_back_when_unset(monkeypatch):
    monkeypatch.delenv("CLUSTERLENS_TEST_VALUE", raising=False)
    assert env_or_default("CLUSTERLENS_TEST_VALUE", "fallback") == "fallback"


def test_install_and_list():
    helm = _client()
    release = helm.install_or_upgrade_chart(
        ChartSpec(release_name="rel", chart_name="example/operator", namespace="tools")
    )
    assert release.namespace == "tools"
    assert release.revision == 1
    assert helm.list_deployed_releases() == [release]


def test_upgrade_increments_revision():
    helm = _client()
    spec = ChartSpec(release_name="rel", chart_name="example/operator", namespace="tools")
    first = helm.install_or_upgrade_chart(spec)
    second = helm.install_or_upgrade_chart(spec)
    assert second.revision == first.revision + 1
    assert len(helm.list_deployed_releases()) == 1


def test_install_without_repo_fails():
    helm = HelmClient({REPO_URL: ["operator"]})
    with pytest.raises(HelmError, match="repo example not found"):
        helm.install_or_upgrade_chart(
            ChartSpec(release_name="rel", chart_name="example/operator")
        )


def test_install_unknown_chart_fails():
    helm = _client()
    with pytest.raises(HelmError, match="not found"):
        helm.install_or_upgrade_chart(ChartSpec(release_name="rel", chart_name="example/other"))


def test_install_bad_reference_fails():
    helm = _client()
    with pytest.raises(HelmError):
        helm.install_or_upgrade_chart(ChartSpec(release_name="rel", chart_name="operator"))


def test_add_repo_without_url_fails():
    with pytest.raises(HelmError):
        HelmClient().add_or_update_chart_repo(ChartRepo(name="example", url=""))


def test_uninstall_removes_release():
    helm = _client()
    spec = ChartSpec(release_name="rel", chart_name="example/operator", namespace="tools")
    helm.install_or_upgrade_chart(spec)
    helm.uninstall_release(spec)
    assert helm.list_deployed_releases() == []


def test_uninstall_missing_release_fails():
    helm = _client()
    with pytest.raises(HelmError, match="not found"):
        helm.uninstall_release(ChartSpec(release_name="rel", chart_name="example/operator"))


def test_uninstall_checks_namespace():
    helm = _client()
    helm.install_or_upgrade_chart(
        ChartSpec(release_name="rel", chart_name="example/operator", namespace="tools")
    )
    with pytest.raises(HelmError):
        helm.uninstall_release(
            ChartSpec(release_name="rel", chart_name="example/operator", namespace="other")
        )
    assert len(helm.list_deployed_releases()) == 1