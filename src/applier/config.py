"""Configuration management with validation.

Configuration is validated once at load time; an invalid environment
fails before any store call is made.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from .retry import RetryPolicy


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Retry budget for persisting updates: fixed attempts, fixed pause
DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_INTERVAL_SECONDS = 5.0
MAX_RETRY_ATTEMPTS = 20
MAX_RETRY_INTERVAL_SECONDS = 300.0

# Ingress annotations carrying an L4 (TCP) binding are "<prefix>/l4-host"
# and "<prefix>/l4-port"
DEFAULT_ANNOTATION_PREFIX = "nginx.ingress.kubernetes.io"

DEFAULT_LOG_LEVEL = "INFO"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# DNS subdomain prefix, as accepted for annotation key prefixes
VALID_ANNOTATION_PREFIX_PATTERN = r"^[a-z0-9]([-a-z0-9.]{0,251}[a-z0-9])?$"


@dataclass(frozen=True)
class Config:
    """Applier configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-pass.
    """

    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS
    annotation_prefix: str = DEFAULT_ANNOTATION_PREFIX

    # Logging
    log_level: str = DEFAULT_LOG_LEVEL
    json_logs: bool = True

    # Cluster access
    kube_context: str | None = None
    in_cluster: bool = False

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not (1 <= self.retry_attempts <= MAX_RETRY_ATTEMPTS):
            errors.append(
                f"APPLIER_RETRY_ATTEMPTS must be between 1 and {MAX_RETRY_ATTEMPTS}"
            )

        if not (0 <= self.retry_interval_seconds <= MAX_RETRY_INTERVAL_SECONDS):
            errors.append(
                f"APPLIER_RETRY_INTERVAL must be between 0 and "
                f"{MAX_RETRY_INTERVAL_SECONDS:.0f} seconds"
            )

        if not re.match(VALID_ANNOTATION_PREFIX_PATTERN, self.annotation_prefix):
            errors.append(
                f"APPLIER_ANNOTATION_PREFIX must be a DNS subdomain: {self.annotation_prefix}"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"APPLIER_LOG_LEVEL must be one of {VALID_LOG_LEVELS}: {self.log_level}")

        if self.in_cluster and self.kube_context:
            errors.append("KUBECONFIG_CONTEXT cannot be combined with APPLIER_IN_CLUSTER")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    def annotation(self, name: str) -> str:
        """Full annotation key for a name under the configured prefix."""
        return f"{self.annotation_prefix}/{name}"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.retry_attempts,
            interval_seconds=self.retry_interval_seconds,
        )

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            APPLIER_RETRY_ATTEMPTS: Update attempts before giving up (default: 5)
            APPLIER_RETRY_INTERVAL: Seconds between attempts (default: 5)
            APPLIER_ANNOTATION_PREFIX: Prefix of the l4-host/l4-port ingress
                annotations (default: nginx.ingress.kubernetes.io)
            APPLIER_LOG_LEVEL: Root log level (default: INFO)
            APPLIER_JSON_LOGS: Emit JSON log lines (default: true)
            KUBECONFIG_CONTEXT: kubeconfig context to use (default: current)
            APPLIER_IN_CLUSTER: Use the pod service account (default: false)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            retry_attempts=get_int("APPLIER_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS),
            retry_interval_seconds=get_float(
                "APPLIER_RETRY_INTERVAL", DEFAULT_RETRY_INTERVAL_SECONDS
            ),
            annotation_prefix=os.environ.get(
                "APPLIER_ANNOTATION_PREFIX", DEFAULT_ANNOTATION_PREFIX
            ),
            log_level=os.environ.get("APPLIER_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
            json_logs=get_bool("APPLIER_JSON_LOGS", True),
            kube_context=os.environ.get("KUBECONFIG_CONTEXT") or None,
            in_cluster=get_bool("APPLIER_IN_CLUSTER", False),
        )
