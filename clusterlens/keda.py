"""KEDA integration: installs KEDA and analyzes its ScaledObjects."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping
from typing import Any, Optional

from clusterlens.apireference import ApiReference
from clusterlens.helm import ChartRepo, ChartSpec, HelmClient, env_or_default
from clusterlens.kube import AnalysisContext, Failure, NotFoundError, ObjectMeta, Result, Sensitive
from clusterlens.settings import Settings, filters_active
from clusterlens.util import fetch_latest_event, get_parent, mask_string

REPO = env_or_default("KEDA_REPO", "https://kedacore.github.io/charts")
VERSION = env_or_default("KEDA_VERSION", "2.11.2")
CHART_NAME = env_or_default("KEDA_CHART_NAME", "keda")
REPO_SHORT_NAME = env_or_default("KEDA_REPO_SHORT_NAME", "keda")
RELEASE_NAME = env_or_default("KEDA_RELEASE_NAME", "keda-k8sgpt")

SCALED_OBJECT = "ScaledObject"

_API_GROUP = "keda.sh"
_API_VERSION = "v1alpha1"
_TARGET_KINDS = frozenset({"Deployment", "ReplicationController", "ReplicaSet", "StatefulSet"})
_RESOURCE_TRIGGERS = frozenset({"cpu", "memory"})

# kind, display name, cluster scoped
_KEDA_RESOURCES = (
    ("ScaledObject", "scaledObject", False),
    ("ScaledJob", "scaledJob", False),
    ("TriggerAuthentication", "triggerAuthentication", False),
    ("ClusterTriggerAuthentication", "clusterTriggerAuthentication", True),
)


def pod_spec_of(workload: Mapping[str, Any]) -> dict:
    """Return the pod template spec of a workload object."""
    template = (workload.get("spec") or {}).get("template") or {}
    return template.get("spec") or {}


def _sensitive(name: str) -> list:
    return [Sensitive(unmasked=name, masked=mask_string(name))]


def _lacks_resources(container: Mapping[str, Any], triggers: list) -> bool:
    resources = container.get("resources") or {}
    for trigger in triggers:
        if trigger.get("type") in _RESOURCE_TRIGGERS:
            if resources.get("requests") is None or resources.get("limits") is None:
                return True
    return False


class ScaledObjectAnalyzer:
    """Reports ScaledObjects whose scale target is missing, unsupported or misconfigured."""

    def analyze(self, context: AnalysisContext) -> list:
        """Return the context's earlier results followed by the ones found here."""
        client = context.client
        api_doc = ApiReference(
            kind=SCALED_OBJECT,
            group=_API_GROUP,
            version=_API_VERSION,
            openapi_schema=context.openapi_schema,
        )

        pre_analysis: dict = {}
        for scaled_object in client.list(SCALED_OBJECT, context.namespace):
            meta = scaled_object.get("metadata") or {}
            so_namespace = meta.get("namespace", "")
            so_name = meta.get("name", "")
            spec = scaled_object.get("spec") or {}
            target = spec.get("scaleTargetRef") or {}
            target_kind = target.get("kind") or "Deployment"
            target_name = target.get("name", "")
            triggers = list(spec.get("triggers") or ())

            failures = []
            workload = None
            if target_kind in _TARGET_KINDS:
                try:
                    workload = client.get(target_kind, so_namespace, target_name)
                except NotFoundError:
                    workload = None
            else:
                failures.append(
                    Failure(
                        text=(
                            f"ScaledObject uses {target_kind} as ScaleTargetRef "
                            "which is not an option."
                        ),
                        sensitive=[],
                    )
                )

            if workload is None:
                failures.append(
                    Failure(
                        text=(
                            f"ScaledObject uses {target_kind}/{target_name} as "
                            "ScaleTargetRef which does not exist."
                        ),
                        kubernetes_doc=api_doc.get_api_doc_v2("spec.scaleTargetRef"),
                        sensitive=_sensitive(target_name),
                    )
                )
            else:
                containers = list(pod_spec_of(workload).get("containers") or ())
                configured = len(containers) - sum(
                    1 for container in containers if _lacks_resources(container, triggers)
                )
                if configured <= 0:
                    failures.append(
                        Failure(
                            text=(
                                f"{target_kind} {so_namespace}/{target_name} "
                                "does not have resource configured."
                            ),
                            kubernetes_doc=api_doc.get_api_doc_v2("spec.scaleTargetRef.kind"),
                            sensitive=_sensitive(target_name),
                        )
                    )

                event = fetch_latest_event(client, so_namespace, so_name)
                if event is None:
                    continue
                if event.get("type") != "Normal":
                    failures.append(
                        Failure(text=event.get("message", ""), sensitive=_sensitive(target_name))
                    )

            if failures:
                pre_analysis[f"{so_namespace}/{so_name}"] = (scaled_object, failures)

        results = list(context.results)
        for key, (scaled_object, failures) in pre_analysis.items():
            parent, _ = get_parent(client, ObjectMeta.from_dict(scaled_object))
            results.append(
                Result(kind=SCALED_OBJECT, name=key, error=failures, parent_object=parent)
            )
        return results


class Keda:
    """Integration that installs KEDA and analyzes its ScaledObjects."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        helm: Optional[HelmClient] = None,
        client_factory: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.helm = helm if helm is not None else HelmClient()
        self.client_factory = client_factory

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

    def _client(self) -> Any:
        if self.client_factory is None:
            raise RuntimeError(
                "Error initialising kubernetes client: no client factory configured"
            )
        try:
            return self.client_factory(
                self.settings.get("kubecontext", ""), self.settings.get("kubeconfig", "")
            )
        except Exception as exc:
            raise RuntimeError(f"Error initialising kubernetes client: {exc}") from exc

    def deploy(self, namespace: str) -> None:
        """Install or upgrade the KEDA chart in ``namespace``."""
        self.helm.add_or_update_chart_repo(ChartRepo(name=REPO_SHORT_NAME, url=REPO))
        self.helm.install_or_upgrade_chart(self._chart_spec(namespace, True))

    def undeploy(self, namespace: str) -> None:
        """Delete all KEDA resources, then uninstall the KEDA release."""
        client = self._client()
        try:
            keda_namespace = self.get_namespace()
        except LookupError:
            keda_namespace = ""
        print(f"Keda namespace: {keda_namespace}")

        for kind, label, cluster_scoped in _KEDA_RESOURCES:
            for obj in client.list(kind, ""):
                meta = obj.get("metadata") or {}
                name = meta.get("name", "")
                obj_namespace = "" if cluster_scoped else meta.get("namespace", "")
                try:
                    client.delete(kind, obj_namespace, name)
                except NotFoundError as exc:
                    print(f"Error deleting {label} {name}: {exc}")
                    continue
                if cluster_scoped:
                    print(f"Deleted {label} {name}")
                else:
                    print(f"Deleted {label} {name} in namespace {obj_namespace}")

        self.helm.uninstall_release(self._chart_spec(namespace, False))

    def add_analyzer(self, analyzers: MutableMapping[str, Any]) -> None:
        """Register this integration's analyzer by name."""
        analyzers[SCALED_OBJECT] = ScaledObjectAnalyzer()

    def analyzer_names(self) -> list:
        """Return the names of the analyzers this integration provides."""
        return [SCALED_OBJECT]

    def get_namespace(self) -> str:
        """Return the namespace the KEDA release is installed in."""
        for release in self.helm.list_deployed_releases():
            if release.name == RELEASE_NAME:
                return release.namespace
        raise LookupError("keda release not found")

    def owns_analyzer(self, analyzer: str) -> bool:
        """Return whether ``analyzer`` belongs to this integration."""
        return analyzer in self.analyzer_names()

    def _is_deployed(self) -> bool:
        client = self._client()
        try:
            groups = client.api_groups()
        except Exception as exc:
            raise RuntimeError(f"Error initialising discovery client: {exc}") from exc
        return _API_GROUP in groups

    def is_activate(self) -> bool:
        """Return whether a filter is active and the KEDA API group is served."""
        return filters_active(self.settings, self.analyzer_names()) and self._is_deployed()