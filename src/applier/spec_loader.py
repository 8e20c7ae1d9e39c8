"""Application document loading with validation.

SECURITY: File size is checked before reading. Input validation is
performed at the boundary by the pydantic models.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import DesiredResourceSet

logger = logging.getLogger(__name__)

MAX_APPLICATION_FILE_SIZE_BYTES = 1024 * 1024  # 1MB


class SpecLoadError(Exception):
    """Raised when an application document cannot be loaded or validated."""

    pass


def load_application(path: Path) -> DesiredResourceSet:
    """Load and validate an application document from YAML.

    Both a flat document and a Kubernetes-style wrapper (apiVersion, kind,
    metadata, spec) are accepted; in the latter case the spec section is
    validated.

    Args:
        path: YAML file to load.

    Returns:
        Validated desired-state set.

    Raises:
        SpecLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Application file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat application file {path}: {e}") from e

    if file_size > MAX_APPLICATION_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Application file exceeds maximum size of "
            f"{MAX_APPLICATION_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read application file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Application file must contain a YAML mapping: {path}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        data = raw_data.get("spec", {})
        if not isinstance(data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {path}")
    else:
        data = raw_data

    try:
        app = DesiredResourceSet.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}" if loc else f"  - {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {path}:\n{error_list}") from e

    logger.info(
        "Loaded application '%s' for tenant '%s' from %s",
        app.service_id,
        app.tenant_id,
        path,
    )
    return app
