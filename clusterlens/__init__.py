"""Cluster object model, helpers, and Trivy, KEDA and Kyverno integrations with their analyzers."""

__version__ = "0.1.0"