"""Process bootstrap for the applier: logging setup and the apply flow."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from .apply import ApplyResult, apply_one
from .config import Config
from .errors import NamespaceProvisioningError
from .spec_loader import SpecLoadError, load_application
from .store import KubernetesStore, ResourceStore

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_ATTRS = frozenset((
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
))


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure root logging on stdout, JSON lines by default."""
    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level.upper())

    # Reduce noise from the Kubernetes client
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run_apply(
    config: Config,
    app_file: Path,
    store: ResourceStore | None = None,
) -> tuple[int, ApplyResult | None]:
    """Load an application document and apply it once.

    Args:
        config: Validated configuration.
        app_file: Application document to apply.
        store: Store to use; a KubernetesStore built from config by default.

    Returns:
        Exit code (0 success, 1 fatal error) and the pass result, if any.
    """
    logger = logging.getLogger(__name__)

    try:
        app = load_application(app_file)
    except SpecLoadError as e:
        logger.error(
            "Application loading failed",
            extra={"error": str(e), "app_file": str(app_file)},
        )
        return 1, None

    if store is None:
        try:
            store = KubernetesStore.from_config(config)
        except Exception as e:
            logger.error(
                "Failed to initialize Kubernetes client",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return 1, None

    try:
        result = apply_one(store, app, config=config)
    except NamespaceProvisioningError as e:
        logger.error("Apply aborted", extra={"error": str(e), "tenant_id": app.tenant_id})
        return 1, None

    return 0, result
