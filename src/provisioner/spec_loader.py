"""Desired-state file loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import ResourceDocument

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when a document cannot be loaded or fails validation."""

    pass


def load_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML (or JSON) file that must contain a mapping.

    Raises:
        SpecLoadError: If the file is missing, too large, unparsable or not a mapping.
    """
    if not path.exists():
        raise SpecLoadError(f"File not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat file {path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(f"File exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read file {path}: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise SpecLoadError(f"File must contain a YAML mapping: {path}")
    return data


def load_document(path: Path) -> ResourceDocument:
    """Load and validate a desired-state document.

    Both a flat document and a Kubernetes-style wrapper (apiVersion, kind,
    metadata, spec) are accepted; for the wrapper only the spec section is
    validated.

    Raises:
        SpecLoadError: If the document cannot be loaded or fails validation.
    """
    raw_data = load_mapping(path)

    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec")
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {path}")
    else:
        spec_data = raw_data

    try:
        document = ResourceDocument.model_validate(spec_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {path}:\n{error_list}") from e

    logger.info("Loaded %s document from %s", document.resource_kind, path)
    return document
