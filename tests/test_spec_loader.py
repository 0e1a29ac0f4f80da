"""Tests for manifest and status loading."""

import json
from pathlib import Path

import pytest

from cosmosdb_operator.config import MAX_MANIFEST_FILE_SIZE_BYTES
from cosmosdb_operator.models import ObservedStatus
from cosmosdb_operator.spec_loader import SpecLoadError, load_resource, load_status, save_status

VALID_MANIFEST = """\
apiVersion: azure.microsoft.com/v1alpha1
kind: CosmosDB
metadata:
  name: db1
  namespace: default
  labels:
    team: data
spec:
  location: eastus
  resourceGroup: rg1
  kind: GlobalDocumentDB
  properties:
    databaseAccountOfferType: Standard
"""


def write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadResource:
    """Tests for load_resource()."""

    def test_valid_manifest(self, tmp_path: Path) -> None:
        """Test loading a valid manifest."""
        resource = load_resource(write(tmp_path / "db1.yaml", VALID_MANIFEST))

        assert resource.name == "db1"
        assert resource.spec.resource_group == "rg1"
        assert resource.metadata.labels == {"team": "data"}

    def test_status_section_ignored(self, tmp_path: Path) -> None:
        """Test status in the manifest does not leak into the object."""
        manifest = VALID_MANIFEST + "status:\n  provisioned: true\n  specHash: abc\n"

        resource = load_resource(write(tmp_path / "db1.yaml", manifest))

        assert resource.status == ObservedStatus()

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing manifest raises SpecLoadError."""
        with pytest.raises(SpecLoadError, match="not found"):
            load_resource(tmp_path / "missing.yaml")

    def test_oversized_file(self, tmp_path: Path) -> None:
        """Test manifests above the size limit are rejected."""
        path = write(tmp_path / "big.yaml", "#" * (MAX_MANIFEST_FILE_SIZE_BYTES + 1))

        with pytest.raises(SpecLoadError, match="maximum size"):
            load_resource(path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test malformed YAML raises SpecLoadError."""
        with pytest.raises(SpecLoadError, match="Invalid YAML"):
            load_resource(write(tmp_path / "bad.yaml", "kind: [unclosed"))

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        """Test a YAML list is rejected."""
        with pytest.raises(SpecLoadError, match="mapping"):
            load_resource(write(tmp_path / "list.yaml", "- a\n- b\n"))

    def test_wrong_kind(self, tmp_path: Path) -> None:
        """Test manifests of other kinds are rejected."""
        manifest = VALID_MANIFEST.replace("kind: CosmosDB", "kind: ResourceGroup")

        with pytest.raises(SpecLoadError, match="kind must be 'CosmosDB'"):
            load_resource(write(tmp_path / "rg.yaml", manifest))

    def test_validation_error_lists_fields(self, tmp_path: Path) -> None:
        """Test validation failures name the offending field."""
        manifest = VALID_MANIFEST.replace("  resourceGroup: rg1\n", "")

        with pytest.raises(SpecLoadError) as exc_info:
            load_resource(write(tmp_path / "db1.yaml", manifest))

        assert "spec.resourceGroup" in str(exc_info.value)


class TestStatusPersistence:
    """Tests for load_status() and save_status()."""

    def test_missing_status_is_fresh(self, tmp_path: Path) -> None:
        """Test a first run starts from an empty status."""
        assert load_status(tmp_path / "db1.status.json") == ObservedStatus()

    def test_save_then_load(self, tmp_path: Path) -> None:
        """Test a saved status is read back unchanged."""
        path = tmp_path / "db1.status.json"
        status = ObservedStatus(spec_hash="abc", state="Creating", provisioning=True)

        save_status(path, status)

        assert load_status(path) == status
        assert json.loads(path.read_text())["specHash"] == "abc"
        assert not path.with_suffix(".json.tmp").exists()

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Test a corrupt status file raises SpecLoadError."""
        with pytest.raises(SpecLoadError, match="Invalid JSON"):
            load_status(write(tmp_path / "db1.status.json", "{not json"))

    def test_not_an_object(self, tmp_path: Path) -> None:
        """Test a JSON array is rejected."""
        with pytest.raises(SpecLoadError, match="JSON object"):
            load_status(write(tmp_path / "db1.status.json", "[]"))

    def test_invalid_field(self, tmp_path: Path) -> None:
        """Test a status with a wrongly typed field is rejected."""
        with pytest.raises(SpecLoadError, match="provisioned"):
            load_status(write(tmp_path / "db1.status.json", '{"provisioned": "maybe"}'))
