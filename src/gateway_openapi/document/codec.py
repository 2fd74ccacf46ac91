"""Read and write OpenAPI documents as JSON or YAML text.

Parsing goes through ``yaml.safe_load`` for both formats, since JSON is a
subset of YAML.
"""

import json
from pathlib import Path

import yaml
from pydantic import ValidationError

from gateway_openapi.document.models import Document
from gateway_openapi.errors import DocumentParseError

FORMATS = ("json", "yaml")


def parse_document(text: str) -> Document:
    """Parse OpenAPI 3.x text into a Document.

    Raises DocumentParseError for malformed text, a non-mapping root, a
    missing or non-3.x ``openapi`` version, or a structurally invalid tree.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DocumentParseError(f"not valid JSON or YAML: {e}") from e

    if not isinstance(data, dict):
        raise DocumentParseError("document root is not a mapping")

    version = str(data.get("openapi", ""))
    if not version.startswith("3."):
        raise DocumentParseError(f"unsupported OpenAPI version: {version or 'missing'}")

    try:
        return Document.model_validate(data)
    except ValidationError as e:
        raise DocumentParseError(f"invalid OpenAPI document: {e.error_count()} error(s)") from e


def load_document(file_path: Path) -> Document:
    """Parse an OpenAPI JSON/YAML file."""
    return parse_document(file_path.read_text(encoding="utf-8"))


def document_to_dict(document: Document) -> dict:
    """Plain-data view of a document, using OpenAPI key names."""
    return document.model_dump(by_alias=True, exclude_none=True, mode="json")


def dump_document(document: Document, fmt: str = "json") -> str:
    """Serialize a document as ``json`` or ``yaml`` text."""
    data = document_to_dict(document)
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False)
    raise ValueError(f"Unknown output format: {fmt}")


def detect_format(file_name: str | None = None, accept: str | None = None) -> str:
    """Pick the output format from a file name suffix, then an Accept header.

    Returns: 'json' or 'yaml'.
    """
    if file_name:
        suffix = Path(file_name).suffix.lower()
        if suffix in (".yaml", ".yml"):
            return "yaml"
        if suffix == ".json":
            return "json"

    if accept and "yaml" in accept.lower():
        return "yaml"

    return "json"
