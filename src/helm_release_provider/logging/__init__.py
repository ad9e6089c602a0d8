"""Structured logging for handlers, the proxy function and the CLI."""

from helm_release_provider.logging.config import bind_invocation, configure_logging, get_logger

__all__ = ["bind_invocation", "configure_logging", "get_logger"]
