# clusterlens

A library for analysing Kubernetes-style cluster state and reporting the
problems found by add-on integrations: Trivy vulnerability and
config-audit reports, KEDA scaled objects and Kyverno policy reports.

Cluster objects are plain manifest mappings (`{"kind": ..., "metadata":
{...}, "spec": {...}}`), and analyzers return lists of `Result` objects.

## Installation

```
pip install clusterlens
```

## Modules

- `clusterlens.kube` holds the data model: `ObjectMeta` (with
  `ObjectMeta.from_dict`), `OwnerReference`, `Failure`, `Sensitive`,
  `Result`, the `AnalysisContext` handed to every analyzer, and
  `InMemoryCluster`, an object store with `add`, `get`, `list` (by kind,
  namespace and label selector), `delete` and `api_groups`. A missing
  object raises `NotFoundError`.
- `clusterlens.util` provides helpers: `get_parent` (follows owner
  references to the top-level owner), `remove_duplicates`, `slice_diff`,
  `mask_string`, `replace_if_match`, `get_cache_key` (hex SHA-256 of
  `provider-language-text`), `get_pod_list_by_labels`,
  `fetch_latest_event`, `file_exists`, `ensure_dir_exists`,
  `map_to_string`, `labels_include_any`, `new_headers` and
  `label_str_to_selector`.
- `clusterlens.apireference.ApiReference` looks up the description of a
  dotted field path in an OpenAPI v2 document, e.g.
  `get_api_doc_v2("spec.scaleTargetRef")`.
- `clusterlens.settings.Settings` is a case-insensitive key/value store.
  `write()` saves it to the file set with `set_config_file`, as JSON or
  YAML depending on the file suffix, and raises `ConfigWriteError` on
  failure. `filters_active(settings, names)` tells whether any of the
  names is listed under the `active_filters` key.
- `clusterlens.helm` has `ChartRepo`, `ChartSpec`, `Release` and
  `HelmClient`, which keeps track of registered chart repositories and
  installed releases. A chart can only be installed from a registered
  repository whose URL the client's catalog lists as serving it. Failures
  raise `HelmError`. `env_or_default` reads an environment variable with a
  fallback.
- `clusterlens.trivy`: `Trivy` installs and uninstalls the Trivy operator
  release through a `HelmClient`; `TrivyAnalyzer` reports critical
  vulnerabilities from `VulnerabilityReport` objects and medium, high and
  critical checks from `ConfigAuditReport` objects.
- `clusterlens.keda`: `Keda` installs the KEDA release and, on
  `undeploy`, deletes all KEDA objects before uninstalling it;
  `ScaledObjectAnalyzer` reports scaled objects whose target is
  unsupported, missing or lacks resource requests and limits, as well as
  non-`Normal` latest events.
- `clusterlens.kyverno`: `Kyverno` installs nothing; `KyvernoAnalyzer`
  reports failed policy results from `PolicyReport` objects and critical
  entries from `ClusterPolicyReport` objects.

Every integration offers `analyzer_names()`, `owns_analyzer(name)`,
`add_analyzer(mapping)`, `deploy(namespace)`, `undeploy(namespace)`,
`get_namespace()` and `is_activate()`. `is_activate()` is true when one of
the integration's analyzers is an active filter and the cluster returned by
the `client_factory(kubecontext, kubeconfig)` callable serves the
integration's API group.

## Example

```python
from clusterlens import trivy
from clusterlens.helm import HelmClient
from clusterlens.kube import AnalysisContext, InMemoryCluster
from clusterlens.settings import Settings

cluster = InMemoryCluster([
    {
        "kind": "VulnerabilityReport",
        "metadata": {"name": "pod-app", "namespace": "default"},
        "report": {
            "vulnerabilities": [
                {"severity": "CRITICAL", "vulnerabilityID": "CVE-0000-0001",
                 "primaryLink": "https://example.com/CVE-0000-0001"},
            ],
        },
    },
])

settings = Settings({"active_filters": ["VulnerabilityReport"]})
helm = HelmClient({trivy.REPO: [trivy.CHART_NAME]})
integration = trivy.Trivy(settings, helm, lambda context, config: cluster)

integration.deploy("trivy-system")
print(integration.get_namespace())  # "trivy-system"

analyzers = {}
integration.add_analyzer(analyzers)
for result in analyzers["VulnerabilityReport"].analyze(AnalysisContext(client=cluster)):
    print(result.kind, result.name, [failure.text for failure in result.error])
```

## What this package does not do

- It does not connect to a live cluster. Analyzers and integrations work
  against any object with the `get`, `list`, `delete` and `api_groups`
  methods of `InMemoryCluster`; no client for a real API server is
  included.
- `HelmClient` does not download charts or talk to a cluster; it only
  records repositories and releases in memory.
- There is no registry that activates or deactivates integrations by name
  and keeps the active filter list in the settings file up to date, and
  no integration for checking monitoring-server configurations.
- There is no command-line tool and no server.