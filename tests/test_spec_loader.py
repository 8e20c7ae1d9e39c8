"""Tests for application document loading."""

from pathlib import Path

import pytest

from applier.models import ResourceKind
from applier.spec_loader import (
    MAX_APPLICATION_FILE_SIZE_BYTES,
    SpecLoadError,
    load_application,
)

FLAT_DOCUMENT = """\
tenantId: t1
serviceId: svc-1
services:
  - metadata:
      name: web
      labels:
        app: web
    spec:
      ports:
        - port: 80
secrets:
  - name: web-tls
    type: kubernetes.io/tls
    data:
      tls.crt: Y2VydA==
ingresses:
  - metadata:
      name: web-ing
    spec:
      tls:
        - secretName: web-tls
      rules:
        - host: www.example.com
deleteIngresses:
  - name: old-ing
"""

WRAPPED_DOCUMENT = """\
apiVersion: applier.example.com/v1
kind: Application
metadata:
  name: svc-1
spec:
  tenantId: t1
  serviceId: svc-1
  customParams:
    domain: www.example.com
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "app.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadApplication:
    """Tests for load_application()."""

    def test_flat_document(self, tmp_path: Path) -> None:
        """Test loading a flat document with manifest-form entries."""
        app = load_application(_write(tmp_path, FLAT_DOCUMENT))

        assert app.tenant_id == "t1"
        assert app.services[0].name == "web"
        assert app.services[0].namespace == "t1"
        assert app.services[0].labels == {"app": "web"}
        assert app.secrets[0].payload["type"] == "kubernetes.io/tls"
        assert app.ingresses[0].kind == ResourceKind.INGRESS
        assert app.delete_ingresses[0].name == "old-ing"
        assert not app.is_narrow_update

    def test_wrapped_document(self, tmp_path: Path) -> None:
        """Test that the spec section of a wrapper document is used."""
        app = load_application(_write(tmp_path, WRAPPED_DOCUMENT))

        assert app.service_id == "svc-1"
        assert app.custom_params == {"domain": "www.example.com"}
        assert app.is_narrow_update

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SpecLoadError, match="not found"):
            load_application(tmp_path / "missing.yaml")

    def test_file_too_large(self, tmp_path: Path) -> None:
        """Test that oversized files are rejected before parsing."""
        path = _write(tmp_path, "#" * (MAX_APPLICATION_FILE_SIZE_BYTES + 1))

        with pytest.raises(SpecLoadError, match="exceeds maximum size"):
            load_application(path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(SpecLoadError, match="Invalid YAML"):
            load_application(_write(tmp_path, "tenantId: [unclosed"))

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(SpecLoadError, match="YAML mapping"):
            load_application(_write(tmp_path, "- a\n- b\n"))

    def test_spec_not_a_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(SpecLoadError, match="Spec section"):
            load_application(_write(tmp_path, "apiVersion: v1\nspec: [1, 2]\n"))

    def test_validation_errors_listed(self, tmp_path: Path) -> None:
        """Test that every validation error is reported with its location."""
        path = _write(tmp_path, "serviceId: svc-1\nservices:\n  - spec: {}\n")

        with pytest.raises(SpecLoadError) as exc_info:
            load_application(path)

        message = str(exc_info.value)
        assert message.startswith(f"Validation failed for {path}:")
        assert "tenantId" in message
        assert "services.0" in message

    def test_conflicting_lists_rejected(self, tmp_path: Path) -> None:
        content = "tenantId: t1\nserviceId: s\nsecrets:\n  - name: a\ndeleteSecrets:\n  - name: a\n"

        with pytest.raises(SpecLoadError, match="both desired and deleted"):
            load_application(_write(tmp_path, content))
