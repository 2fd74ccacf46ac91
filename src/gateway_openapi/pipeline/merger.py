"""Merge several OpenAPI documents into one service document.

Inputs are expected to be pruned and prefixed already. Collisions are never
fatal: the first document wins and each collision is reported as a
``MergeConflict``.
"""

import logging
from dataclasses import dataclass, field

from gateway_openapi.document.models import COMPONENT_KINDS, Components, Document, Info, PathItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeConflict:
    kind: str  # "operation" or a components kind such as "schemas"
    name: str
    identical: bool  # both sides carried the same definition

    def __str__(self) -> str:
        if self.kind == "operation":
            return f"Operation conflict: {self.name} already exists, keeping first occurrence"
        if self.kind == "schemas":
            return (
                f"Schema name conflict: '{self.name}' exists in multiple documents. "
                "Consider using prefix collision avoidance. Keeping first occurrence."
            )
        return f"Component conflict: {self.kind} '{self.name}' exists in multiple documents, keeping first occurrence"


@dataclass
class MergeResult:
    document: Document
    conflicts: list[MergeConflict] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [str(c) for c in self.conflicts if not c.identical]


def merge_documents(documents: list[Document], service_name: str) -> MergeResult:
    """Combine ``documents`` into a single document titled ``service_name``."""
    documents = list(documents)
    if not documents:
        raise ValueError("At least one document is required for merging")
    if not service_name or not service_name.strip():
        raise ValueError("Service name cannot be blank")

    logger.info("Merging %d OpenAPI document(s) for service '%s'", len(documents), service_name)

    if len(documents) == 1:
        source = documents[0]
        return MergeResult(source.model_copy(update={"info": source.info.model_copy(update={"title": service_name})}))

    conflicts: list[MergeConflict] = []
    merged = Document(
        openapi=documents[0].openapi,
        info=_merge_info(documents, service_name),
        servers=_merge_servers(documents),
        paths=_merge_paths(documents, conflicts),
        components=_merge_components(documents, conflicts),
        security=[requirement for d in documents for requirement in d.security],
        tags=_merge_tags(documents),
        externalDocs=next((d.external_docs for d in documents if d.external_docs is not None), None),
        path_extensions=_merge_path_extensions(documents),
    )

    for conflict in conflicts:
        if conflict.identical:
            logger.debug("%s (identical definitions)", conflict)
        else:
            logger.warning("%s", conflict)

    logger.info(
        "Merge complete: %d paths, %d schemas, %d conflicts",
        len(merged.paths), len(merged.components.schemas or {}), len(conflicts),
    )
    return MergeResult(merged, conflicts)


def _merge_info(documents: list[Document], service_name: str) -> Info:
    has_description = any(d.info.description for d in documents)
    return Info(
        title=service_name,
        version=documents[0].info.version or "1.0.0",
        description=(
            f"Aggregated API for {service_name}. Combined from {len(documents)} service(s)."
            if has_description else None
        ),
    )


def _merge_servers(documents: list[Document]) -> list:
    servers = []
    seen: set[str] = set()
    for document in documents:
        for server in document.servers:
            key = server.url.lower()
            if server.url.strip() and key not in seen:
                seen.add(key)
                servers.append(server)
    return servers


def _merge_tags(documents: list[Document]) -> list:
    tags = {}
    for document in documents:
        for tag in document.tags:
            key = tag.name.lower()
            if tag.name.strip() and key not in tags:
                tags[key] = tag
    return list(tags.values())


def _merge_path_extensions(documents: list[Document]) -> dict:
    extensions = {}
    for document in documents:
        for key, value in document.path_extensions.items():
            extensions.setdefault(key, value)
    return extensions


def _merge_paths(documents: list[Document], conflicts: list[MergeConflict]) -> dict[str, PathItem]:
    paths: dict[str, PathItem] = {}
    for document in documents:
        for path, item in document.paths.items():
            existing = paths.get(path)
            if existing is None:
                paths[path] = item
                continue

            logger.debug("Path conflict detected: %s exists in multiple documents, merging operations", path)
            operations = dict(existing.operations)
            for method, operation in item.operations.items():
                if method in operations:
                    conflicts.append(MergeConflict(
                        kind="operation",
                        name=f"{method.upper()} {path}",
                        identical=operations[method] == operation,
                    ))
                else:
                    operations[method] = operation
            paths[path] = existing.with_operations(operations)
    return paths


def _merge_components(documents: list[Document], conflicts: list[MergeConflict]) -> Components:
    merged = {}
    for field_name, kind in COMPONENT_KINDS.items():
        collection = {}
        for document in documents:
            for name, entity in (getattr(document.components, field_name) or {}).items():
                if name in collection:
                    conflicts.append(MergeConflict(kind=kind, name=name, identical=collection[name] == entity))
                else:
                    collection[name] = entity
        merged[field_name] = collection or None
    return Components(**merged)
