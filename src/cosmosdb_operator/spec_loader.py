"""Loading of CosmosDB manifests and persisted status records.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import MAX_MANIFEST_FILE_SIZE_BYTES, MAX_STATUS_FILE_SIZE_BYTES
from .models import COSMOSDB_KIND, CosmosDB, ObservedStatus

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when a manifest or status file cannot be loaded or validated."""

    pass


def _read_capped(path: Path, max_bytes: int, what: str) -> str:
    try:
        file_size = path.stat().st_size
    except FileNotFoundError as e:
        raise SpecLoadError(f"{what} file not found: {path}") from e
    except OSError as e:
        raise SpecLoadError(f"Failed to stat {what} file {path}: {e}") from e

    if file_size > max_bytes:
        raise SpecLoadError(f"{what} file exceeds maximum size of {max_bytes} bytes: {path}")

    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read {what} file {path}: {e}") from e


def _format_validation_error(path: Path, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    return f"Validation failed for {path}:\n" + "\n".join(errors)


def load_resource(manifest_path: Path) -> CosmosDB:
    """Load and validate a CosmosDB manifest from YAML.

    Any ``status`` section in the manifest is ignored; status is persisted
    separately (see load_status).

    Raises:
        SpecLoadError: If the manifest cannot be loaded or fails validation.
    """
    content = _read_capped(manifest_path, MAX_MANIFEST_FILE_SIZE_BYTES, "Manifest")

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {manifest_path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Manifest must contain a YAML mapping: {manifest_path}")

    kind = raw_data.get("kind")
    if kind != COSMOSDB_KIND:
        raise SpecLoadError(f"Manifest kind must be '{COSMOSDB_KIND}', got '{kind}': {manifest_path}")

    raw_data.pop("status", None)

    try:
        resource = CosmosDB.model_validate(raw_data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(manifest_path, e)) from e

    logger.info("Loaded CosmosDB '%s' from %s", resource.key, manifest_path)
    return resource


def load_status(status_path: Path) -> ObservedStatus:
    """Load a persisted status record; a missing file yields a fresh status.

    Raises:
        SpecLoadError: If the file exists but cannot be parsed.
    """
    if not status_path.exists():
        return ObservedStatus()

    content = _read_capped(status_path, MAX_STATUS_FILE_SIZE_BYTES, "Status")

    try:
        raw_data = json.loads(content)
    except json.JSONDecodeError as e:
        raise SpecLoadError(f"Invalid JSON in {status_path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Status file must contain a JSON object: {status_path}")

    try:
        return ObservedStatus.model_validate(raw_data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(status_path, e)) from e


def save_status(status_path: Path, status: ObservedStatus) -> None:
    """Persist a status record as JSON, replacing the file atomically."""
    tmp_path = status_path.with_suffix(status_path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(status.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(status_path)
