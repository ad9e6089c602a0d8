"""External system integrations (Kubernetes, Helm, AWS Lambda)."""
