"""Provider configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DEFAULT_CALLBACK_DELAY_SECONDS = 5
DEFAULT_MAX_TRANSIENT_RETRIES = 10


class ProxyFunctionConfig(BaseModel):
    """Settings used to create the in-VPC proxy function.

    The deployment artifact is built elsewhere; it is referenced either as
    a local zip file or as an S3 object.
    """

    model_config = ConfigDict(extra="forbid")

    role_arn: str | None = None
    zip_path: str | None = None
    s3_bucket: str | None = None
    s3_key: str | None = None
    runtime: str = "python3.12"
    handler: str = "helm_release_provider.proxy.handler.lambda_handler"
    memory_size: int = 512
    timeout: int = 900
    name_prefix: str = "helm-provider-proxy-"

    @field_validator("memory_size", "timeout")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate sizes and timeouts are positive."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @model_validator(mode="after")
    def validate_code_source(self) -> ProxyFunctionConfig:
        """An S3 code location needs both bucket and key."""
        if bool(self.s3_bucket) != bool(self.s3_key):
            raise ValueError("s3_bucket and s3_key must be set together")
        return self

    def code(self) -> dict[str, Any]:
        """Build the ``Code`` argument for ``lambda.create_function``.

        Raises:
            ValueError: If no code source is configured.
        """
        if self.s3_bucket and self.s3_key:
            return {"S3Bucket": self.s3_bucket, "S3Key": self.s3_key}
        if self.zip_path:
            return {"ZipFile": Path(self.zip_path).expanduser().read_bytes()}
        raise ValueError("proxy function code is not configured (zip_path or s3_bucket/s3_key)")


class ProviderConfig(BaseModel):
    """Complete provider configuration."""

    model_config = ConfigDict(extra="forbid")

    region: str = "us-east-1"
    kubeconfig: str = "~/.kube/config"
    helm_binary: str | None = None
    helm_timeout: int = 300
    retry_attempts: int = 3
    callback_delay_seconds: int = DEFAULT_CALLBACK_DELAY_SECONDS
    max_transient_retries: int = DEFAULT_MAX_TRANSIENT_RETRIES
    proxy: ProxyFunctionConfig = ProxyFunctionConfig()
    log_json: bool = True
    debug: bool = False

    @field_validator("helm_timeout", "callback_delay_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate timeouts and delays are positive."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("retry_attempts", "max_transient_retries")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Validate retry budgets are non-negative."""
        if v < 0:
            raise ValueError("must be non-negative")
        return v

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str) -> str:
        """Expand ~ in kubeconfig path."""
        return str(Path(v).expanduser())

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> ProviderConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            AWS_REGION: Region recorded in identity tokens
            HELM_PROVIDER_KUBECONFIG: Kubeconfig path when the model has none
            HELM_PROVIDER_HELM_BINARY: Explicit helm binary path
            HELM_PROVIDER_HELM_TIMEOUT: Helm subprocess timeout in seconds
            HELM_PROVIDER_RETRY_ATTEMPTS: In-invocation retries for unreachable clusters
            HELM_PROVIDER_CALLBACK_DELAY: Re-poll delay in seconds
            HELM_PROVIDER_MAX_TRANSIENT_RETRIES: Re-polls allowed for transient failures
            HELM_PROVIDER_PROXY_ROLE_ARN: Execution role of the proxy function
            HELM_PROVIDER_PROXY_ZIP: Local path of the proxy deployment zip
            HELM_PROVIDER_PROXY_S3_BUCKET / HELM_PROVIDER_PROXY_S3_KEY: S3 location of the zip
            HELM_PROVIDER_PROXY_RUNTIME / HELM_PROVIDER_PROXY_HANDLER: Proxy runtime settings
            HELM_PROVIDER_PROXY_MEMORY / HELM_PROVIDER_PROXY_TIMEOUT: Proxy sizing
            HELM_PROVIDER_LOG_JSON: "false" switches to console log rendering
            HELM_PROVIDER_DEBUG: "true" enables debug logging
        """
        config_dict = base_config.copy() if base_config else {}
        proxy = dict(config_dict.get("proxy") or {})

        if region := os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION"):
            config_dict["region"] = region

        if kubeconfig := os.environ.get("HELM_PROVIDER_KUBECONFIG"):
            config_dict["kubeconfig"] = kubeconfig

        if helm_binary := os.environ.get("HELM_PROVIDER_HELM_BINARY"):
            config_dict["helm_binary"] = helm_binary

        int_overrides = {
            "HELM_PROVIDER_HELM_TIMEOUT": "helm_timeout",
            "HELM_PROVIDER_RETRY_ATTEMPTS": "retry_attempts",
            "HELM_PROVIDER_CALLBACK_DELAY": "callback_delay_seconds",
            "HELM_PROVIDER_MAX_TRANSIENT_RETRIES": "max_transient_retries",
        }
        for env_name, key in int_overrides.items():
            if value := os.environ.get(env_name):
                config_dict[key] = int(value)

        proxy_overrides = {
            "HELM_PROVIDER_PROXY_ROLE_ARN": "role_arn",
            "HELM_PROVIDER_PROXY_ZIP": "zip_path",
            "HELM_PROVIDER_PROXY_S3_BUCKET": "s3_bucket",
            "HELM_PROVIDER_PROXY_S3_KEY": "s3_key",
            "HELM_PROVIDER_PROXY_RUNTIME": "runtime",
            "HELM_PROVIDER_PROXY_HANDLER": "handler",
        }
        for env_name, key in proxy_overrides.items():
            if value := os.environ.get(env_name):
                proxy[key] = value

        if memory := os.environ.get("HELM_PROVIDER_PROXY_MEMORY"):
            proxy["memory_size"] = int(memory)
        if proxy_timeout := os.environ.get("HELM_PROVIDER_PROXY_TIMEOUT"):
            proxy["timeout"] = int(proxy_timeout)

        if log_json := os.environ.get("HELM_PROVIDER_LOG_JSON"):
            config_dict["log_json"] = log_json.lower() not in ("0", "false", "no")
        if debug := os.environ.get("HELM_PROVIDER_DEBUG"):
            config_dict["debug"] = debug.lower() in ("1", "true", "yes")

        config_dict["proxy"] = proxy
        return cls.model_validate(config_dict)
