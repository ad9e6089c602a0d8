"""Service layer: Kubernetes resource inspection and release orchestration."""
