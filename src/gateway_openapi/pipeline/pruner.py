"""Document pruning.

Keeps only the reachable paths of a backend document, published under their
gateway paths, and drops every component that the kept paths no longer
reference, directly or through other components.
"""

import logging
from typing import Any, Iterable

from pydantic import BaseModel

from gateway_openapi.document.models import (
    COMPONENT_KINDS,
    Document,
    discriminator_target,
    parse_component_ref,
    schema_ref,
)
from gateway_openapi.pipeline.reachability import PathReachabilityResult

logger = logging.getLogger(__name__)


def prune_document(document: Document, reachability: PathReachabilityResult) -> Document:
    """Build a new document holding the reachable paths and their dependencies."""
    logger.info(
        "Pruning OpenAPI document: %d original paths, %d reachable",
        len(document.paths), len(reachability.reachable),
    )

    paths = {
        gateway_path: info.path_item.with_operations(info.operations)
        for gateway_path, info in reachability.reachable.items()
    }

    used_tags: set[str] = set()
    security_names: set[str] = {name for requirement in document.security for name in requirement}
    for path_item in paths.values():
        for operation in path_item.operations.values():
            used_tags.update(tag.lower() for tag in operation.tags or [] if tag and tag.strip())
            for requirement in operation.security or []:
                security_names.update(requirement)

    used = referenced_components(document, paths.values(), security_names)

    updates = {}
    for field_name, kind in COMPONENT_KINDS.items():
        collection = getattr(document.components, field_name)
        if collection is None:
            continue
        kept = {name: entity for name, entity in collection.items() if (kind, name) in used}
        updates[field_name] = kept or None
        if len(kept) != len(collection):
            logger.debug("Pruned %s: %d -> %d", kind, len(collection), len(kept))

    pruned = document.model_copy(update={
        "servers": list(document.servers),
        "paths": paths,
        "components": document.components.model_copy(update=updates),
        "security": list(document.security),
        "tags": [tag for tag in document.tags if tag.name.lower() in used_tags],
    })
    logger.info(
        "Document pruning complete: %d paths, %d schemas, %d tags",
        len(pruned.paths), len(pruned.components.schemas or {}), len(pruned.tags),
    )
    return pruned


def referenced_components(
    document: Document,
    roots: Iterable[Any],
    security_names: Iterable[str] = (),
) -> set[tuple[str, str]]:
    """Transitive closure of ``(kind, name)`` component references reachable from ``roots``."""
    collections = document.components.collections()
    used: set[tuple[str, str]] = set()
    queue: list[tuple[str, str]] = []

    def add(key: tuple[str, str]) -> None:
        if key not in used:
            used.add(key)
            queue.append(key)

    for root in roots:
        for ref in iter_refs(root):
            key = parse_component_ref(ref)
            if key:
                add(key)

    for name in security_names:
        add(("securitySchemes", name))

    while queue:
        kind, name = queue.pop()
        entity = collections.get(kind, {}).get(name)
        if entity is None:
            continue
        for ref in iter_refs(entity):
            key = parse_component_ref(ref)
            if key:
                add(key)

    return used


def iter_refs(node: Any) -> Iterable[str]:
    """Every ``$ref`` string anywhere below ``node``.

    Discriminator mapping targets count as schema references.
    """
    if isinstance(node, BaseModel):
        node = node.model_dump(by_alias=True, exclude_none=True)
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str):
            yield ref
        yield from _discriminator_refs(node.get("discriminator"))
        for value in node.values():
            yield from iter_refs(value)
    elif isinstance(node, list):
        for value in node:
            yield from iter_refs(value)


def _discriminator_refs(discriminator: Any) -> Iterable[str]:
    if not isinstance(discriminator, dict) or not isinstance(discriminator.get("mapping"), dict):
        return
    for target in discriminator["mapping"].values():
        if not isinstance(target, str):
            continue
        name = discriminator_target(target)
        yield schema_ref(name) if name is not None else target
