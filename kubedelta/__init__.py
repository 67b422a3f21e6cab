"""kubedelta - field-level change feed for Kubernetes workloads."""

__version__ = "0.1.0"
