"""In-VPC proxy function entry point."""

from helm_release_provider.proxy.handler import lambda_handler

__all__ = ["lambda_handler"]
